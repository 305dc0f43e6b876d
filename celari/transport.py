# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# transport.py
#
# Talk to authenticators: USB security keys over CTAP2 (via python-fido2), or the
# software authenticator in emulator.py.
#
# Both ceremonies answer None when the user cancelled, the timeout passed, or the
# device gave nothing useful. The gateway (proto.py) turns that into an exception.
#
import threading
from .constants import *
from .utils import B2A, b64url_encode
from .webauthn import AttestationResponse, AssertionResponse, parse_attestation_object

# Change this to see traffic details
VERBOSE = False

def find_authenticators(include_emulator=False, emulator_path=None):
    #
    # Find all authenticators we could run a ceremony against.
    #
    # - generator function.
    #
    if include_emulator:
        from .emulator import SoftAuthenticator
        yield SoftAuthenticator.find_emulator(emulator_path)

    from fido2.hid import CtapHidDevice

    for dev in CtapHidDevice.list_devices():
        yield CtapHidAuthenticator(dev)

def find_first(**kws):
    # operate on the first authenticator we can find
    for a in find_authenticators(**kws):
        return a

    return None

def _summary(options):
    # one line, short values only
    return ', '.join(k+'='+(str(v) if len(str(v)) < 20 else '...')
                                for k,v in options.items())

class AuthenticatorABC:
    #
    # Abstract base class. What a platform authenticator can do for us.
    #
    name = 'authenticator'
    is_emulator = False

    def _make_credential(self, options):
        # run registration ceremony; return AttestationResponse or None
        raise NotImplementedError

    def _get_assertion(self, options):
        # run authentication ceremony; return AssertionResponse or None
        raise NotImplementedError

    def close(self):
        # release resources
        pass

    def create(self, options):
        if VERBOSE:
            print(f">> create ({_summary(options)})")

        rv = self._make_credential(options)

        if VERBOSE:
            if rv is None:
                print("<< create: cancelled")
            else:
                print(f"<< create: credential {b64url_encode(rv.raw_id)}")

        return rv

    def get(self, options):
        if VERBOSE:
            print(f">> get ({_summary(options)})")

        rv = self._get_assertion(options)

        if VERBOSE:
            if rv is None:
                print("<< get: cancelled")
            else:
                print(f"<< get: sig {B2A(rv.signature[0:8])}... ({len(rv.signature)} bytes)")

        return rv

    def __repr__(self):
        return '<%s %s>' % (self.__class__.__name__, self.name)

class _ConsoleInteraction:
    # python-fido2 calls these while waiting on the device
    def prompt_up(self):
        print("Touch your authenticator...")

    def request_pin(self, permissions, rp_id):
        from getpass import getpass
        return getpass("Enter authenticator PIN: ")

    def request_uv(self, permissions, rp_id):
        return True

class CtapHidAuthenticator(AuthenticatorABC):
    #
    # A real security key, on USB.
    #

    def __init__(self, device, origin=ORIGIN):
        from fido2.client import Fido2Client, UserInteraction

        class Interaction(_ConsoleInteraction, UserInteraction):
            pass

        self.dev = device
        desc = getattr(device, 'descriptor', None)
        self.name = getattr(desc, 'product_name', None) or 'USB authenticator'
        self.client = Fido2Client(device, origin, user_interaction=Interaction())

    def close(self):
        self.dev.close()
        del self.dev

    def _with_timeout(self, options, fn, *args):
        # CTAP has no timeout of its own; cancel via event when time is up
        from fido2.client import ClientError
        from fido2.ctap import CtapError

        event = threading.Event()
        timer = threading.Timer(options.get('timeout', CEREMONY_TIMEOUT_MS) / 1000.0, event.set)
        timer.start()
        try:
            return fn(*args, event=event)
        except (ClientError, CtapError) as exc:
            if VERBOSE:
                print(f"<< device said: {exc}")
            return None
        finally:
            timer.cancel()

    def _make_credential(self, options):
        from fido2.webauthn import (PublicKeyCredentialCreationOptions,
                PublicKeyCredentialRpEntity, PublicKeyCredentialUserEntity,
                PublicKeyCredentialParameters, PublicKeyCredentialType,
                AuthenticatorSelectionCriteria, AuthenticatorAttachment,
                ResidentKeyRequirement, UserVerificationRequirement,
                AttestationConveyancePreference)

        rp, user = options['rp'], options['user']
        sel = options.get('authenticatorSelection', {})

        opts = PublicKeyCredentialCreationOptions(
            rp=PublicKeyCredentialRpEntity(name=rp['name'], id=rp['id']),
            user=PublicKeyCredentialUserEntity(name=user['name'], id=user['id'],
                                                display_name=user['displayName']),
            challenge=options['challenge'],
            pub_key_cred_params=[PublicKeyCredentialParameters(
                                        type=PublicKeyCredentialType.PUBLIC_KEY, alg=p['alg'])
                                    for p in options['pubKeyCredParams']],
            timeout=options.get('timeout'),
            authenticator_selection=AuthenticatorSelectionCriteria(
                authenticator_attachment=AuthenticatorAttachment(sel['authenticatorAttachment']),
                resident_key=ResidentKeyRequirement(sel['residentKey']),
                user_verification=UserVerificationRequirement(sel['userVerification'])),
            attestation=AttestationConveyancePreference(options.get('attestation', 'none')),
        )

        result = self._with_timeout(options, self.client.make_credential, opts)
        if result is None:
            return None

        att_obj = bytes(result.attestation_object)
        cred_id = parse_attestation_object(att_obj)['auth_data'].get('credential_id')
        if not cred_id:
            return None

        return AttestationResponse(raw_id=cred_id, attestation_object=att_obj,
                                    client_data_json=bytes(result.client_data))

    def _get_assertion(self, options):
        from fido2.webauthn import (PublicKeyCredentialRequestOptions,
                PublicKeyCredentialDescriptor, PublicKeyCredentialType,
                UserVerificationRequirement)

        opts = PublicKeyCredentialRequestOptions(
            challenge=options['challenge'],
            timeout=options.get('timeout'),
            rp_id=options['rpId'],
            allow_credentials=[PublicKeyCredentialDescriptor(
                                    type=PublicKeyCredentialType.PUBLIC_KEY, id=c['id'])
                                for c in options.get('allowCredentials', [])],
            user_verification=UserVerificationRequirement(options['userVerification']),
        )

        sel = self._with_timeout(options, self.client.get_assertion, opts)
        if sel is None:
            return None

        resp = sel.get_response(0)
        return AssertionResponse(raw_id=bytes(resp.credential_id),
                                    authenticator_data=bytes(resp.authenticator_data),
                                    client_data_json=bytes(resp.client_data),
                                    signature=bytes(resp.signature),
                                    user_handle=resp.user_handle)

# EOF
