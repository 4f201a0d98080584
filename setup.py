from setuptools import setup, find_packages

from revaudit import __version__
from revaudit import __description__
from revaudit import __doc__ as __long_description__

setup(
    name = 'revaudit',
    version = __version__,
    packages = find_packages(),
    install_requires = [
        'SQLAlchemy>=2.0',
        ],
    extras_require = {
        'test': ['pytest'],
        },

    # metadata for upload to PyPI
    author = "Open Knowledge Foundation",
    author_email = "info@okfn.org",
    description = __description__,
    long_description = __long_description__,
    license = "MIT",
    keywords = "audit revisioning history sqlalchemy orm",
    zip_safe = False,
    python_requires = '>=3.8',
    classifiers = [
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Topic :: Database',
        'Topic :: Software Development :: Libraries :: Python Modules'],
)
