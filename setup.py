from setuptools import setup, find_packages


setup(
    name="asarkit",
    version="0.1",
    packages=find_packages(include=["asarkit", "asarkit.*"]),
    description="Pack, inspect and extract .asar archives (JSON header + concatenated file contents).",
    author="asarkit contributors",
    python_requires=">=3.8",
    install_requires=[],
    entry_points={
        "console_scripts": [
            "asarkit=asarkit.cli:main",
        ]
    },
)
