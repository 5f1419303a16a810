from setuptools import setup, find_packages

setup(
    name="garch-evt-risk-engine",
    version="1.0.0",
    author="Jose Orlando Bobadilla Fuentes",
    description=(
        "Conditional VaR/ES engine combining a GARCH volatility filter with "
        "a peaks-over-threshold GPD tail, plus breach backtesting"
    ),
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.24.0", "scipy>=1.11.0", "pandas>=2.0.0",
        "arch>=6.2.0", "statsmodels>=0.14.0",
    ],
    extras_require={
        "dev": ["pytest>=7.4.0", "pytest-cov>=4.1.0"],
    },
    entry_points={
        "console_scripts": ["garch-evt = garch_evt.cli:main"]
    },
    keywords=[
        "value-at-risk", "expected-shortfall", "garch",
        "extreme-value-theory", "generalized-pareto", "backtesting",
    ],
)
