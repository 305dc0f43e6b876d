#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
#
# Celari wallet: passkey signing, auth witnesses and encrypted backups, in Python
#
import re

# To use this command to install and yet be able to edit the code (here). Great for dev:
#
#   pip install --editable .
#
# with cli dependencies
#
#   pip install --editable '.[cli]'
#
# with test dependencies
#
#   pip install --editable '.[test]'
#
from setuptools import setup

# read version w/o importing the package (deps may not be installed yet)
with open("celari/__init__.py", "r") as fh:
    __version__ = re.search(r"^__version__ = '([^']+)'", fh.read(), re.M).group(1)

# these minimum versions are tested, some earlier values would probably work too.
requirements = [
    'cbor2>=5.4.1',
    'cryptography>=41.0.0',
    'fido2>=1.1.0,<2',
]

# for servers that work w/ backups or offline keys and dont have authenticators
offline_requirements = [r for r in requirements if 'fido2' not in r]

cli_requirements = [
    'click>=8.0.3',
    'pyqrcode>=1.2.1',
    'pypng>=0.0.21',
    'keyring>=23.0',
]

test_requirements = [
    'pytest',
    'click>=8.0.3',
    'keyring>=23.0',
]

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name='celari-passkey',
    version=__version__,
    packages=[ 'celari' ],
    python_requires='>=3.8',
    install_requires=requirements,
    extras_require={
        'cli': cli_requirements,
        'test': test_requirements,
        'offline': offline_requirements,
    },
    description="Passkey (WebAuthn) signing and encrypted backups for Celari wallet accounts",
    long_description=long_description,
    long_description_content_type="text/markdown",
    entry_points='''
        [console_scripts]
        celari=celari.cli:main
    ''',
    classifiers=[
        'Operating System :: POSIX :: Linux',
        'Operating System :: Microsoft :: Windows',
        'Operating System :: MacOS :: MacOS X',
    ],
)
