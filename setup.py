import codecs
import os
import re

from setuptools import find_packages
from setuptools import setup


def read_file(filename, encoding='utf8'):
    """Read unicode from given file."""
    with codecs.open(filename, encoding=encoding) as fd:
        return fd.read()


here = os.path.abspath(os.path.dirname(__file__))

# read version number (and other metadata) from package init
init_fn = os.path.join(here, 'src', 'certwarden', '__init__.py')
meta = dict(re.findall(r"""__([a-z]+)__ = '([^']+)""", read_file(init_fn)))

version = meta['version']

# This package relies on PyOpenSSL through acme, however, it isn't specified
# here to avoid masking the more specific requirements in acme.
install_requires = [
    'acme>=3.0.0',
    'ConfigArgParse>=1.5.3',
    'cryptography>=43.0.0',
    'josepy>=1.13.0',
    'requests>=2.20.0',
]

test_extras = [
    'pytest',
    'pytest-xdist',
]

setup(
    name='certwarden',
    version=version,
    description='Keeps ACME certificates of a set of domains issued and renewed',
    author='Certwarden Project',
    license='Apache License 2.0',
    python_requires='>=3.9',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: Apache Software License',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Programming Language :: Python :: 3.13',
        'Topic :: Internet :: WWW/HTTP',
        'Topic :: Security',
        'Topic :: System :: Systems Administration',
    ],

    packages=find_packages(where='src'),
    package_dir={'': 'src'},
    include_package_data=True,
    install_requires=install_requires,
    extras_require={
        'test': test_extras,
    },
    entry_points={
        'console_scripts': [
            'certwarden = certwarden.main:main',
        ],
    },
)
