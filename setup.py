"""Setup configuration for dwh-quality package."""

from setuptools import setup, find_packages
from pathlib import Path

# PyPI long description
readme_file = Path(__file__).parent / "README.md"
long_description = (
    readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""
)

setup(
    name="dwh-quality",
    version="1.0.0",
    description="Rule-based data-quality checks for bronze and silver warehouse tables",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["dwh_quality", "dwh_quality.*"]),
    python_requires=">=3.9",
    install_requires=[
        "ibis-framework[duckdb]>=9.0.0",
        "pandas>=1.5.0",
        "pandera>=0.18.0",
        "pyarrow>=10.0.0",  # Required by ibis result sets
        "pyodbc>=4.0.0",
        "python-dotenv>=1.0.0",
        "pyyaml>=6.0",
        "sqlglot<30",  # ibis 12 emits malformed DDL with sqlglot 30+
        "tenacity>=8.0.0",  # For retry logic
    ],
    extras_require={
        "mssql": ["ibis-framework[mssql]>=9.0.0"],
        "postgres": ["ibis-framework[postgres]>=9.0.0"],
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=22.0.0",
            "flake8>=5.0.0",
            "mypy>=0.990",
        ],
    },
    entry_points={
        "console_scripts": [
            "dwh-quality=dwh_quality.__main__:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Database",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
    keywords="data-quality data-warehouse medallion-architecture bronze silver",
)
