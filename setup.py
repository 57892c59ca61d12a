from setuptools import setup, find_packages

setup(
    name="fs_volume_search",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "psutil>=5.9.0",
        "pyyaml>=6.0.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "fs-volume-search=fs_volume_search.main:main",
        ],
    },
)
