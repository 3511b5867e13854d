from setuptools import setup, find_packages

setup(
    name="pulse_sense",
    version="0.1.0",
    description="PPG signal core: adaptive channels, cardiac rhythm and finger-presence fusion",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24",
        "scipy>=1.10",
    ],
    extras_require={
        "dev": ["pytest>=7.4"],
    },
)
