from setuptools import setup, find_packages

setup(
    name="etcd-flood",
    version="0.1.0",
    description="Cluster bootstrap and flood harness for etcd v0.3, v0.4.6 and v0.5",
    packages=find_packages(include=["etcd_flood", "etcd_flood.*"]),
    install_requires=[
        "aiohttp>=3.8.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "etcd-flood=etcd_flood.main:main",
        ],
    },
)
