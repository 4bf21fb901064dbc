"""
Packaging for the bridge. Tests live beside the modules they test, as *_test.py:

    pip install -e .[test]
    pytest src
"""

from setuptools import setup, find_packages


setup(
    name='wabridge',
    version='0.0.1',
    description='Bridges a messaging account to a message processing service over HTTP.',
    url='',
    author='',
    author_email='',
    license='LGPL',
    package_dir={'': 'src'},
    packages=find_packages('src'),
    package_data={'wabridge.config': ['bridge.*.cfg']},
    python_requires='>=3.8',
    install_requires=[
        'aiohttp>=3.9',
        'configobj>=5.0.6',
        'qrcode>=7.0',
    ],
    extras_require={
        'test': ['pytest', 'PyHamcrest'],
    },
    entry_points={
        'console_scripts': ['wabridge=wabridge.bridge:main'],
    },
    zip_safe=False,
)
