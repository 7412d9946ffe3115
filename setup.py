"""Setup script for the PawaPay marketplace payment service."""

from setuptools import setup, find_packages

setup(
    name="pawapay-marketplace",
    version="1.0.0",
    description="Mobile-money deposits, callbacks and vendor payouts for a marketplace through PawaPay",
    python_requires=">=3.10",
    packages=find_packages(include=["pawapay_marketplace", "pawapay_marketplace.*"]),
    package_data={"pawapay_marketplace": ["database/migrations/versions/*.py"]},
    install_requires=[
        line.strip()
        for line in open("requirements.txt")
        if line.strip() and not line.startswith("#") and not line.startswith("git+")
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-mock>=3.11.0",
            "aiosqlite>=0.19.0",
        ],
        "dev": [
            "black>=23.0.0",
            "isort>=5.12.0",
            "flake8>=6.0.0",
            "mypy>=1.4.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "pawapay-api=pawapay_marketplace.api.main:main",
            "pawapay-status-sync=pawapay_marketplace.workers.status_sync_worker:main",
        ]
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Financial and Insurance Industry",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
