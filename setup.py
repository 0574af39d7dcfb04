"""Setup script for dataferry."""

from setuptools import find_packages, setup

setup(
    name="dataferry",
    version="0.1.0",
    description="Bulk data transfers between a columnar store and flat files",
    author="dataferry Team",
    packages=find_packages(include=["dataferry", "dataferry.*"]),
    install_requires=[
        "duckdb>=1.2.0",  # Columnar store
        "pandas>=2.0.0",  # CSV reading and writing
        "pyarrow>=10.0.0",  # Batch format and schema inference
        "typer>=0.9.0",  # Modern CLI framework
        "rich>=12.0.0",  # CLI tables and progress bars
        "pyyaml>=6.0",  # Profile handling
        "python-dotenv>=1.0.0",  # .env loading
    ],
    package_data={
        "dataferry": ["py.typed"],
    },
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.1.0",
            "black>=22.1.0",
            "isort>=5.10.1",
            "flake8>=4.0.1",
            "mypy>=1.0.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dataferry=dataferry.cli.main:cli",
        ],
    },
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Database",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
)
