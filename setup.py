"""
VaultFlow setup.py — Package configuration.
"""

from setuptools import find_packages, setup

setup(
    name="vaultflow",
    version="0.1.0",
    description="VaultFlow — Cloud document vault core (catalog, blob storage, versioning, realtime projection)",
    packages=find_packages(include=["vaultflow", "vaultflow.*"]),
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.5",
        "networkx>=3.2",
        "pyyaml>=6.0",
        "httpx>=0.27",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
)
