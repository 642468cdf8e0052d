from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line for line in fh.read().splitlines() if line and not line.startswith("#")]

setup(
    name="spatial_network",
    version="0.1.0",
    author="UFABC",
    author_email="author@ufabc.edu.br",
    description="A Python package for building, cleaning and routing on spatial networks",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/ufabc/spatial_network",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: GIS",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "osm": ["osmnx>=1.9"],
        "test": ["pytest>=7.0"],
    },
)
