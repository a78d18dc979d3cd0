"""
pgexec - Setup

Packages the Python query-execution layer. The wire protocol is provided by
libpq through psycopg's ``pq`` module; the binary extra ships libpq itself.
"""

from setuptools import setup, find_packages
from pathlib import Path


setup(
    name="pgexec",
    version="0.1.0",
    description="PostgreSQL query execution with typed, materialized or streamed results",
    long_description=open("README.md").read() if Path("README.md").exists() else "",
    long_description_content_type="text/markdown",
    author="pgexec Contributors",
    license="MIT",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "pydantic>=2.0",
        "psycopg[binary]>=3.1",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Database",
    ],
)
