from setuptools import setup, find_packages

setup(
    name="keystone_network",
    version="0.1.0",
    description="Keystone Taxa Identification in Microbial Co-occurrence Networks",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pandas>=2.2",
        "numpy>=1.26",
        "scikit-learn>=1.5",
        "scipy>=1.13",
        "networkx>=3.2",
        "pyyaml>=6.0"
    ],
    extras_require={
        "test": ["pytest>=8.0"]
    },
    entry_points={
        "console_scripts": [
            "keystone-network=keystone_network.cli:main"
        ]
    },
    include_package_data=True,
)
