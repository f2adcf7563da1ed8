# Copyright (c) 2021 Nordic Semiconductor ASA
#
# SPDX-License-Identifier: BSD-3-Clause

from pathlib import Path

import setuptools

here = Path(__file__).parent

with open(here / 'README.md', 'r') as f:
    long_description = f.read()

with open(here / 'dtbparse' / 'VERSION', 'r') as f:
    # This is option 3 in:
    # https://packaging.python.org/guides/single-sourcing-package-version/
    version = f.read().strip()

setuptools.setup(
    name='dtbparse',
    version=version,
    author='Bruce Ashfield',
    author_email='bruce.ashfield@gmail.com',
    description='A flattened devicetree blob parser',
    license='BSD',
    long_description=long_description,
    long_description_content_type='text/markdown',
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: BSD License',
        'Operating System :: POSIX :: Linux',
    ],
    packages=setuptools.find_packages(include=('dtbparse',)),
    python_requires='>=3.6',
    include_package_data=True,
    package_data={ 'dtbparse': [ 'VERSION', 'dtbparse.ini' ] },
    install_requires=[ "humanfriendly","configparser" ],
    extras_require={ "test": ["pytest"] },
    entry_points={'console_scripts': ('dtbparse = dtbparse.__main__:main',)},
)
