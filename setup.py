"""Setup configuration for the smart-audit package."""

import os
from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Read version from package
version_file = os.path.join(os.path.dirname(__file__), "smartaudit", "__init__.py")
with open(version_file) as f:
    for line in f:
        if line.startswith("__version__"):
            version = line.split("=")[1].strip().strip('"').strip("'")
            break
    else:
        version = "0.1.0"

setup(
    name="smart-audit",
    version=version,
    description="Audit Python projects with external analyzers and apply fixes behind snapshots",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Quality Assurance",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=[
        "pyyaml>=6.0",
        "click>=8.0",
        "rich>=13.0",
        "packaging>=21.0",
    ],
    extras_require={
        "tools": [
            "bandit>=1.7",
            "pip-audit>=2.6",
            "ruff>=0.1",
            "mypy>=1.0",
            "vulture>=2.7",
        ],
        "test": [
            "pytest>=7.0",
            "hypothesis>=6.0",
        ],
        "dev": [
            "pytest>=7.0",
            "hypothesis>=6.0",
            "coverage>=6.0",
            "ruff>=0.1",
            "mypy>=1.0",
            "build>=0.10",
        ],
    },
    entry_points={
        "console_scripts": [
            "smartaudit=smartaudit.cli:main",
        ],
    },
    keywords=[
        "code-quality",
        "static-analysis",
        "security",
        "linting",
        "auto-fix",
    ],
)
