"""Setup script for layerloom — ensures package discovery works with setuptools."""
from setuptools import setup, find_packages

# Explicit package discovery for reliable build (editable and wheel)
setup(
    name="layerloom",
    version="0.1.0",
    description="Neural network topologies as port graphs, compiled onto torch",
    packages=find_packages(where=".", include=("layerloom", "layerloom.*")),
    package_dir={"": "."},
    python_requires=">=3.9",
    install_requires=[
        "torch>=2.0",
        "omegaconf>=2.3",
        "numpy>=1.23",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "layerloom=layerloom.runner:main",
        ],
    },
)
