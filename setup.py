#!/usr/bin/env python

from setuptools import find_packages, setup

install_requires = [
    "PyYAML>=6.0.1",
    "pydantic>=2.10",
    "sentry-sdk>=1.40",
]

tests_requires = [
    "freezegun>=1.2",
    "pytest>=7.1.2",
]

setup(
    name="acctmgr",
    version="0.1.0",
    author="OpenNode Team",
    author_email="info@opennodecloud.com",
    url="https://docs.waldur.com",
    license="MIT",
    description="User and association management for Slurm-style accounting databases.",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    python_requires=">=3.9",
    install_requires=install_requires,
    tests_require=tests_requires,
    extras_require={"tests": tests_requires},
    packages=find_packages(include=["acctmgr", "acctmgr.*"]),
    entry_points={"console_scripts": ["acctmgr = acctmgr.main:main"]},
    classifiers=[
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
