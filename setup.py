from os import path

from setuptools import find_packages, setup

this_dir = path.abspath(path.dirname(__file__))
with open(path.join(this_dir, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="lanesim",
    description="Lanelet-based traffic simulation core",
    long_description=long_description,
    long_description_content_type="text/markdown",
    version="0.1.0",
    packages=find_packages(exclude=("tests", "examples")),
    package_data={"lanesim": ["engine.ini"]},
    include_package_data=True,
    zip_safe=True,
    python_requires=">=3.8",
    install_requires=[
        "setuptools>=41.0.0,!=50.0",
        "cached-property>=1.5.2",
        "click>=7.1.2",  # used in lsim
        "numpy>=1.19.5",
        "psutil>=5.4.8",
        "shapely>=1.8.1",
        # The following are for lanelet map files
        "PyYAML>=3.13",
    ],
    extras_require={
        "dev": [
            "black==22.6.0",
            "isort==5.7.0",
            "pre-commit==2.16.0",
            "pylint>=2.12.2",
            "pytype==2022.1.13",
        ],
        "test": [
            # The following are for testing
            "pytest>=6.2.5",
            "pytest-cov>=3.0.0",
            "pytest-xdist>=2.4.0",
        ],
    },
    entry_points={"console_scripts": ["lsim=cli.cli:lsim"]},
)
