from pathlib import Path
from setuptools import setup, find_packages

PROJECT_ROOT = Path(__file__).parent.resolve()
README = PROJECT_ROOT / "README.md"

setup(
    name="maskclone",
    version="0.3.0",
    description="Masked snapshots of Aurora clusters through a throwaway copy-on-write clone.",
    long_description=README.read_text(encoding="utf-8") if README.exists() else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "boto3>=1.34",
        "botocore>=1.34",
        "cli-core-yo>=0.5,<1.0",
        "typer>=0.21,<0.22",
        "rich>=14,<15",
        "pydantic>=2.5",
        "PyYAML>=6.0",
        "SQLAlchemy>=2.0",
        "mysql-connector-python>=8.0",
        "psycopg2-binary>=2.9",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "maskclone=maskclone.cli:main",
        ],
    },
)
