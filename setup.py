from setuptools import setup, find_packages  # type: ignore

setup(
    name='tasktokens',
    version='0.1.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    install_requires=[
        'cryptography',
        'xrpl-py',
        'PyNaCl',
        'loguru',
    ],
    extras_require={
        'test': ['pytest'],
    },
    description='ToDo list where every task locks value in an encrypted, redeemable token',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.11',
    entry_points={
        'console_scripts': [
            'tasktokens=tasktokens.cli:main',
        ],
    },
)
