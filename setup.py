# -*- coding: utf-8 -
import os
from setuptools import setup, find_packages


def read(fname):
    return open(os.path.join(os.path.dirname(__file__), fname)).read()


setup(
    name="netemrouter",
    version=read("netemrouter/version.txt").strip(),
    description="Redirect the ingress traffic of interfaces to ifb devices",
    license="GPL-3.0",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: System Administrators",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        ],
    keywords="Network emulation, netem, tc, ifb",
    long_description=read("README.rst"),
    packages=find_packages(),
    python_requires=">=3.7",
    install_requires=[
        "jsonschema>=3.0.0",
        "rich>=10.0.0",
        "PyYAML>=5.1",
        "click>=7.0",
    ],
    extras_require={
        "test": ["pytest", "ddt"],
    },
    entry_points={
        "console_scripts": ["netemrouter=netemrouter.cli:main"],
    },
    package_data={"netemrouter": ["version.txt"]},
    include_package_data=True
)
