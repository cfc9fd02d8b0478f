from setuptools import setup, find_packages


setup(
    name="arcstream",
    version="0.1",
    packages=find_packages(include=["arcstream", "arcstream.*"]),
    description="Format-agnostic archiving core: disk traversal, path mapping and a zip driver with symlink support.",
    author="vercingetorx",
    python_requires=">=3.11",
    install_requires=[],
    entry_points={
        "console_scripts": [
            "arcstream=arcstream.cli:main",
        ]
    },
)
