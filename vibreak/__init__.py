__path__ = __import__('pkgutil').extend_path(__path__, __name__)

from importlib.metadata import version

try:
    __version__ = version("vibreak")
except Exception:
    # Local copy or not installed with setuptools.
    __version__ = "9999"
