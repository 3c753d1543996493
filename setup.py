#!/usr/bin/env python3

from setuptools import setup, find_packages
import os

# Read the README file for long description
def read_readme():
    """Read README.md for long description."""
    readme_path = os.path.join(os.path.dirname(__file__), 'README.md')
    try:
        with open(readme_path, 'r', encoding='utf-8') as f:
            return f.read()
    except FileNotFoundError:
        return "Tokemon - Claude rate-limit usage monitoring from the OAuth API and Claude Code session logs"

# Read by tokemon._version when the package is not installed
__version__ = "1.0.0"

setup(
    name="tokemon",
    version=__version__,
    description="Usage monitor fusing the Claude OAuth usage API with Claude Code session logs",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages("src", exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Monitoring",
        "Topic :: Utilities",
    ],
    keywords=[
        "claude", "ai", "token", "usage", "monitor", "oauth", "rate-limit",
        "claude-code", "anthropic", "cli"
    ],
    python_requires=">=3.9",
    install_requires=[
        "pytz>=2021.1",
        "httpx>=0.24",
        "pydantic>=2.0",
        "pydantic-settings>=2.7",
        "sentry-sdk>=2.0",
    ],
    extras_require={
        "dev": [
            "pytest>=6.0",
            "black>=21.0",
            "flake8>=3.8",
        ],
        "test": [
            "pytest>=6.0",
            "pytest-cov>=2.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "tokemon=tokemon.cli.main:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
    license="MIT",
    platforms=["any"],
)
