# setup.py
from setuptools import setup, find_packages

setup(
    name="sitemap_builder",
    version="0.1.0",
    description="Асинхронный генератор XML sitemap: обход сайта, источники записей, раздача по HTTP",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "aiohttp>=3.9",
        "beautifulsoup4>=4.12",
        "click>=8.1",
        "lxml>=5.0",
        "pydantic>=2.6",
        "python-dateutil>=2.8",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "sitemap-builder=sitemap_builder.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
