#!/usr/bin/env python
# -*- coding: utf-8 -*-

import codecs
from setuptools import setup, find_packages


with codecs.open('README.rst', encoding='utf-8') as f:
    readme = f.read()

extra_reqs = {'tests': ['pytest']}

setup(name='vibreak',
      version='0.1.0',
      description=u"Structural break detection in vegetation index time-series",
      long_description_content_type="text/x-rst",
      long_description=readme,
      keywords='modis, ndvi, xarray, bfast, monitoring, change, breakpoints',
      author=u"vibreak developers",
      license='EUPL-v1.2',
      classifiers=[
          'Programming Language :: Python :: 3.9',
          'Programming Language :: Python :: 3.10',
          'Programming Language :: Python :: 3.11',
      ],
      packages=find_packages(exclude=['tests', 'tests.*']),
      install_requires=[
          'numpy',
          'scipy',
          'xarray',
          'rasterio',
          'netCDF4',
          'numba',
          'pandas',
          'affine<3'
      ],
      python_requires=">=3.9",
      extras_require=extra_reqs)
