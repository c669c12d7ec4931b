from setuptools import setup, find_packages

setup(
    name="dive-importer",
    version="0.1.0",
    packages=find_packages(exclude=["tests"]),
    install_requires=[
        "exifread>=3.0.0",
        "exiv2>=0.17.5",
        "python-dateutil>=2.8.2",
        "click>=8.1.7",
        "lxml>=5.3.0",
        "fitparse>=1.2.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.3",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dive-importer=dive_importer.cli:main",
        ],
    },
    python_requires=">=3.8",
)
