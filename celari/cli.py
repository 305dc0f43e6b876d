#!/usr/bin/env python
#
# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# To use this, install with:
#
#   pip install --editable '.[cli]'
#
# That will create the command "celari" in your path.
#
#
import click, sys, json
from base64 import b64encode

from celari.utils import B2A, bytes_to_hex, hex_to_bytes, b64url_decode, message_hash_bytes
from celari.utils import normalize_signature, extract_p256_pubkey
from celari.constants import *
from celari.exceptions import CelariError
from celari.transport import find_authenticators, find_first
from celari.proto import PasskeyGateway, verify_passkey_signature
from celari.models import PasskeyCredential
from celari.witness import P256KeyAuthWitnessProvider, PasskeyAccountContract, generate_p256_keypair
from celari import storage, backup
from celari import __version__

# dict of options that apply to all commands
global global_opts
global_opts = dict()

# Cleanup display (supress traceback) for user-feedback exceptions
_sys_excepthook = sys.excepthook
def my_hook(ty, val, tb):
    if issubclass(ty, CelariError) or ty is RuntimeError:
        print("FATAL: %s" % val, file=sys.stderr)
    else:
        return _sys_excepthook(ty, val, tb)
sys.excepthook=my_hook

def fail(msg):
    # show message and stop
    click.echo(f"FAILURE: {msg}", err=True)
    sys.exit(1)

def get_store():
    # where keys and the credential list are kept
    if global_opts.get('keychain'):
        return storage.KeychainKeyStore()

    return storage.FileKeyStore(global_opts.get('store') or '~/.celari/store.json')

def get_gateway():
    # Pick an authenticator to work with
    if global_opts.get('verbose', False):
        import celari.transport as tt
        import celari.emulator as ee
        tt.VERBOSE = True
        ee.DEBUG = True

    use_emu = global_opts.get('emulator', False)
    auth = find_first(include_emulator=use_emu, emulator_path=global_opts.get('softkey'))

    if auth is None:
        fail("No authenticator found. Is your security key plugged in?")

    if auth.is_emulator:
        click.echo("WARNING: Using software authenticator! Testing purposes only!!", err=True)

    return PasskeyGateway(auth)

def stored_credential(store, credential_id=None):
    # find credential (newest, unless told which) in the store
    have = storage.get_stored_credentials(store)
    if credential_id:
        have = [c for c in have if c['credentialId'] == credential_id]

    if not have:
        fail("No such passkey. Use 'create' first." if credential_id
                    else "No passkeys yet. Use 'create' first.")

    c = have[-1]
    return PasskeyCredential.from_raw_id(b64url_decode(c['credentialId']),
                                    hex_to_bytes(c['publicKeyX']), hex_to_bytes(c['publicKeyY']))

def read_json_file(fname):
    try:
        with open(fname, 'rt') as fd:
            return json.load(fd)
    except ValueError:
        fail(f"Not JSON: {fname}")

def dump_dict(d):
    for k,v in d.items():
        if isinstance(v, (bytes, bytearray)):
            v = B2A(v)

        click.echo('%s: %s' % (k, v))

# Accept any prefix of a command name.
#
# from <https://click.palletsprojects.com/en/8.0.x/advanced/?#command-aliases>
class AliasedGroup(click.Group):
    def get_command(self, ctx, cmd_name):
        rv = click.Group.get_command(self, ctx, cmd_name)
        if rv is not None:
            return rv
        matches = [x for x in self.list_commands(ctx)
                   if x.startswith(cmd_name)]
        if not matches:
            return None
        elif len(matches) == 1:
            return click.Group.get_command(self, ctx, matches[0])
        ctx.fail(f"Ambiguous command. Pick one of: {' | '.join(sorted(matches))}")

    def resolve_command(self, ctx, args):
        # always return the full command name
        _, cmd, args = super().resolve_command(ctx, args)
        return cmd.name, cmd, args


#
# Options we want for all commands
#
@click.group(cls=AliasedGroup)
@click.option('--store', '-s', default='~/.celari/store.json', envvar='CELARI_STORE',
                    metavar="PATH", help="Key store file (default: ~/.celari/store.json)")
@click.option('--keychain', '-k', is_flag=True,
                    help="Keep keys in the OS keychain instead of a file.")
@click.option('--emulator', '-e', is_flag=True,
                    help="Use the software authenticator (testing only).")
@click.option('--softkey', default=None, envvar='CELARI_SOFTKEY', metavar="PATH",
                    help="State file for software authenticator")
@click.option('--verbose', '-v', is_flag=True,
                    help="Show traffic with authenticator.")
@click.option('--pdb', is_flag=True,
                    help="Prepare patient for surgery to remove bugs.")
@click.version_option(version=__version__)
def main(**kws):
    '''
    Passkey accounts for Celari wallet: sign with your authenticator, make auth
    witnesses, and export or restore encrypted backups.

    You can use "res", or "r" for "restore": any distinct prefix for all commands.
    '''
    # implement PDB option here
    if kws.pop('pdb', False):
        import pdb
        def doit(ex_cls, ex, tb):
            pdb.pm()
        sys.excepthook = doit

    # global options, mostly not considered here
    global global_opts
    global_opts.update(kws)

@main.command('devices')
def list_devices():
    "List all authenticators we can find."

    count = 0
    for a in find_authenticators(include_emulator=global_opts.get('emulator', False),
                                    emulator_path=global_opts.get('softkey')):
        click.echo(repr(a))
        count += 1

    if not count:
        click.echo("(none found)")

@main.command('create')
@click.option('--label', '-l', default=None, help="Name for this passkey/account")
def create_passkey(label):
    "Register a new passkey and show what's needed to deploy its account"
    gw = get_gateway()
    store = get_store()

    cred = gw.create_credential(display_name=label or DEFAULT_DISPLAY_NAME)
    saved = storage.save_credential(store, cred, label)

    click.echo(f"Passkey created: {saved['label']}\n")
    click.echo(json.dumps(PasskeyAccountContract.for_credential(cred).deploy_args(), indent=2))

@main.command('list')
def list_passkeys():
    "List passkeys created so far."

    have = storage.get_stored_credentials(get_store())
    if not have:
        click.echo("(none yet)")
        return

    for c in have:
        click.echo(f"{c['label']:20} | {c['credentialId']}")

@main.command('sign')
@click.argument('message_hash', metavar="HASH")
@click.option('--credential', '-c', default=None, metavar="ID",
                    help="Credential to use (default: newest)")
@click.option('--just-sig', '-j', is_flag=True, help='Just the signature itself, nothing more')
def sign_hash(message_hash, credential, just_sig):
    "Sign a 32-byte hash (hex) with a passkey"
    try:
        h = message_hash_bytes(message_hash)
    except ValueError as exc:
        fail(str(exc))

    cred = stored_credential(get_store(), credential)
    psig = get_gateway().sign(cred.credential_id, h)

    if just_sig:
        click.echo(psig.signature_hex)
        return

    if not verify_passkey_signature(cred, psig):
        fail("Signature does not verify against stored public key!?")

    dump_dict(dict(signature=psig.signature, authenticator_data=psig.authenticator_data,
                    client_data_json=psig.client_data_json.decode('utf-8')))

@main.command('keygen')
def make_keypair():
    "Pick a new P-256 key, for accounts deployed from the command line"
    pkcs8, x, y = generate_p256_keypair()

    click.echo(json.dumps(dict(privateKeyPkcs8=b64encode(pkcs8).decode('ascii'),
                                publicKeyX=bytes_to_hex(x), publicKeyY=bytes_to_hex(y)), indent=2))

@main.command('witness')
@click.argument('message_hash', metavar="HASH")
@click.option('--key', '-k', default=None, metavar="B64", help="PKCS8 private key, base64")
@click.option('--key-file', '-f', default=None, type=click.File('rt'),
                    help="File holding PKCS8 private key, base64")
def make_witness(message_hash, key, key_file):
    "Make an auth witness for HASH using a raw P-256 key"
    if bool(key) == bool(key_file):
        fail("Need exactly one of --key or --key-file")

    if key_file:
        key = key_file.read().strip()

    try:
        wit = P256KeyAuthWitnessProvider(key).create_auth_witness(message_hash)
    except ValueError as exc:
        fail(str(exc))

    click.echo(json.dumps(wit.as_dict()))

@main.command('normalize')
@click.argument('signature', metavar="HEX")
def normalize_sig(signature):
    "Convert a DER (or raw) P-256 signature into 64-byte r||s"
    try:
        sig = hex_to_bytes(signature)
    except ValueError:
        fail("Need hex digits")

    click.echo(bytes_to_hex(normalize_signature(sig)))

@main.command('pubkey')
@click.argument('spki', metavar="SPKI_HEX")
def show_pubkey(spki):
    "Show X and Y coordinates of a public key in SubjectPublicKeyInfo form"
    try:
        spki = hex_to_bytes(spki)
    except ValueError:
        fail("Need hex digits")

    x, y = extract_p256_pubkey(spki)
    click.echo(f'x: {bytes_to_hex(x)}\ny: {bytes_to_hex(y)}')

@main.command('backup')
@click.argument('payload_file', metavar="PAYLOAD.json", type=click.Path(exists=True))
@click.option('--outfile', '-o', metavar="filename.json",
                        help="File to save into", default=None, type=str)
def do_backup(payload_file, outfile):
    "Encrypt account details into a password-protected backup file"
    payload = backup.BackupPayload.from_dict(read_json_file(payload_file))

    pw = click.prompt("Backup password", hide_input=True, confirmation_prompt=True)
    if len(pw) < MIN_BACKUP_PASSWORD:
        fail(f"Password must be at least {MIN_BACKUP_PASSWORD} characters")

    if not outfile:
        outfile = backup.default_backup_filename(payload.label)

    click.echo("Encrypting with AES-256-GCM...", err=True)
    env = backup.encrypt(payload, pw)

    with open(outfile, 'wt') as fp:
        fp.write(env.to_json(indent=2))

        click.echo(f"Wrote {fp.tell():,} bytes to: {outfile}")

@main.command('restore')
@click.argument('backup_file', metavar="FILE", type=click.Path(exists=True))
@click.option('--show', is_flag=True, help="Show decrypted contents (including secrets!)")
def do_restore(backup_file, show):
    "Decrypt a backup file and put its keys into the key store"
    env = backup.EncryptedBackupEnvelope.from_dict(read_json_file(backup_file))

    pw = click.prompt("Backup password", hide_input=True)
    payload = backup.decrypt(env, pw)

    acct = backup.restore_account(payload, get_store())

    click.echo(f"Restored: {acct.label} ({acct.short_address})")

    if show:
        click.echo(json.dumps(payload.to_dict(), indent=2, sort_keys=True))

@main.command('qr')
@click.argument('address')
@click.option('--outfile', '-o', metavar="filename.png",
                        help="Save an SVG or PNG (depends on extension)", default=None,
                        type=click.File('wb'))
@click.option('--error-mode', '-e', default='L', metavar="L|M|H",
            help="Forward error correction level (L = low, H=High=bigger)")
def show_qr(address, outfile, error_mode):
    "Show an account address as a QR"
    import pyqrcode

    q = pyqrcode.create(address, error=error_mode, mode='binary')

    if not outfile:
        print(q.terminal(quiet_zone=2))
        print((' '*4) + address)
        print()
    else:
        if outfile.name.lower().endswith('.svg'):
            q.svg(outfile, scale=1)
        else:
            q.png(outfile)

        click.echo(f"Wrote {outfile.tell():,} bytes to: {outfile.name}", err=1)

# EOF
