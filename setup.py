#!/usr/bin/python3
# Setup file for gitlite
# Copyright (C) 2024 The gitlite authors
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later

from setuptools import setup

tests_require = ["pytest"]

setup(
    name="gitlite",
    version="0.1.0",
    description="Minimal Python implementation of the Git object model and smart HTTP clone",
    keywords=["git", "vcs"],
    license="Apache-2.0 OR GPL-2.0-or-later",
    packages=["gitlite"],
    package_data={"": ["py.typed"]},
    python_requires=">=3.10",
    install_requires=["urllib3>=2.0"],
    extras_require={"test": tests_require},
    entry_points={"console_scripts": ["gitlite=gitlite.cli:_main"]},
    classifiers=[
        "Development Status :: 3 - Alpha",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3 :: Only",
        "Operating System :: POSIX",
        "Topic :: Software Development :: Version Control",
    ],
)
