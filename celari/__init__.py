#
# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#

__version__ = '1.0.0'

__all__ = [ 'proto', 'exceptions', 'transport', 'constants', 'utils', 'witness', 'backup',
            'storage' ]

# find connected authenticators
from celari.transport import find_authenticators, find_first

# signing ceremonies, wants an authenticator
from celari.proto import PasskeyGateway
