from setuptools import setup, find_packages

setup(
    name='fpmm-engine',
    version='0.1.0',
    packages=find_packages(include=['fpmm', 'fpmm.*']),
    install_requires=[
        'mpmath',
        'numpy',
        'python-dotenv',
        'typing_extensions',
    ],
    extras_require={
        'test': ['pytest'],
    },
    description='Deterministic Python engine for a fixed-product market maker over combinatorial conditional-token positions, with clone deployment and in-memory ledgers.',
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.10',
)
