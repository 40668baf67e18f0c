from setuptools import setup, find_packages

setup(
    name='neighbor_search',
    version='0.1.0',
    description='Exact all-k-nearest and furthest neighbor search with single- and dual-tree pruning',
    author='Your Name',
    packages=find_packages(include=['neighbor_search', 'neighbor_search.*']),
    python_requires='>=3.8',
    install_requires=[
        'numpy>=1.21.0',
        'scipy>=1.7.0',
        'scikit-learn>=1.0.0',
        'pandas>=1.3.0',
        'matplotlib>=3.4.0',
        'pyyaml>=6.0',
        'tqdm>=4.62.0',
        'joblib>=1.0.0',
    ],
    extras_require={
        'dev': [
            'pytest>=6.0.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'allknn=neighbor_search.cli:main',
        ],
    },
)
