"""
Python logging handler that sends log records to elmah.io
"""

import ast
import re

from setuptools import find_packages, setup

_version_re = re.compile(r"__version__\s+=\s+(.*)")

with open("elmahio_logging/version.py", "rb") as f:
    version = str(ast.literal_eval(_version_re.search(f.read().decode("utf-8")).group(1)))

setup(
    name="elmahio-logging",
    version=version,
    license="MIT",
    description="Send python log records to elmah.io.",
    long_description=__doc__,
    packages=find_packages(exclude=("tests", "tests.*")),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "requests>=2.32.2",
        "python-json-logger>=2.0.7",
        "Flask>=3.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "pytest-mock>=3.14.0",
            "requests-mock>=1.12.1",
            "freezegun>=1.5.1",
        ],
    },
)
