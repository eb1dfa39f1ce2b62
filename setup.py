from setuptools import setup, find_packages

setup(
    name="pooling_bench",
    version="0.1.0",
    packages=find_packages(include=['pooling_bench', 'pooling_bench.*']),
    install_requires=[
        "pandas",
        "numpy",
        "scipy",
        "scikit-learn",
        "statsmodels",
        "pymc",
        "arviz"
    ],
    extras_require={
        "test": ["pytest"]
    }
)
