"""Package setup for Stock Analyzer."""

from setuptools import setup, find_packages

setup(
    name="stock-analyzer",
    version="1.0.0",
    description="Stock return, GARCH risk and Monte Carlo portfolio analysis",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24.0",
        "pandas>=2.0.0",
        "scipy>=1.10.0",
        "matplotlib>=3.7.0",
        "rich>=13.0.0",
        "statsmodels>=0.14.0",
        "arch>=6.0.0",
        "prophet>=1.1.4",
        "cvxpy>=1.3.0",
        "scikit-learn>=1.2.0",
    ],
    extras_require={
        "test": ["pytest>=7.0.0"],
    },
    entry_points={
        "console_scripts": [
            "stock-analyzer=stock_analyzer.cli:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Topic :: Office/Business :: Financial :: Investment",
    ],
)
