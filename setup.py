#!/usr/bin/env python3

from setuptools import setup, find_packages

# Read the README file
def read_readme():
    try:
        with open('README.md', 'r', encoding='utf-8') as f:
            return f.read()
    except FileNotFoundError:
        return "Shuttle: Encrypted Stop-and-Wait File Transfer over TCP"

# Read requirements
def read_requirements():
    try:
        with open('requirements.txt', 'r') as f:
            return [line.strip() for line in f if line.strip() and not line.startswith('#')]
    except FileNotFoundError:
        return ['PyYAML>=6.0', 'cryptography>=41.0']

setup(
    name='shuttle-transfer',
    version='0.1.0',
    description='Encrypted Stop-and-Wait File Transfer over TCP',
    long_description=read_readme(),
    long_description_content_type='text/markdown',

    # Package configuration
    packages=find_packages('src'),
    package_dir={'': 'src'},
    python_requires='>=3.8',
    install_requires=read_requirements(),

    # Entry points for command-line scripts
    entry_points={
        'console_scripts': [
            'shuttle=shuttle.cli:main',
        ],
    },

    # Classification
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Education',
        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX :: Linux',
        'Operating System :: MacOS :: MacOS X',
        'Programming Language :: Python :: 3',
        'Topic :: Communications :: File Sharing',
        'Topic :: Security :: Cryptography',
        'Topic :: System :: Networking',
    ],

    keywords='tcp file-transfer stop-and-wait aes encryption',

    # Testing
    extras_require={
        'dev': [
            'pytest>=6.0',
            'pytest-cov>=2.0',
            'black>=21.0',
            'flake8>=3.8',
            'mypy>=0.910',
        ],
        'test': [
            'pytest>=6.0',
        ],
    },

    # Zip safety
    zip_safe=False,
)
