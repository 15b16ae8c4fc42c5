#!/usr/bin/env python3
import os.path
import runpy

from setuptools import setup, find_packages

here = os.path.abspath(os.path.dirname(__file__))

with open(os.path.join(here, "README.rst"), encoding="utf-8") as f:
    long_description = f.read()

version_mod = runpy.run_path("imapsasl/version.py")

setup(
    name="imapsasl",
    version=version_mod["__version__"],
    description="Pure-python, protocol agnostic SASL client exchange "
    "driver with DIGEST-MD5",
    long_description=long_description,
    author="imapsasl contributors",
    license="LGPLv3+",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3 :: Only",
        "Topic :: Communications :: Email :: Post-Office :: IMAP",
        "License :: OSI Approved :: GNU Lesser General Public License v3 or later (LGPLv3+)",
    ],
    keywords="sasl imap digest-md5 authentication library",
    python_requires=">=3.5",
    packages=find_packages(exclude=["tests*"]),
    extras_require={
        "test": ["pytest"],
    },
)
