"""
Command-line interface for easycdm.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from easycdm.client.license import fetch_decryption_keys
from easycdm.client.loader import create_cdm, load_client
from easycdm.common import setup_logger
from easycdm.common.config import Config
from easycdm.common.ecc import EccKey
from easycdm.common.exceptions import CdmError
from easycdm.common.models import UserConfig
from easycdm.playready.bcert import CertificateChain
from easycdm.playready.device import Device
from easycdm.server import start_server
from easycdm.widevine.device import DeviceType, WidevineClient

logger = logging.getLogger("easycdm")


def _parse_headers(values: tuple[str, ...]) -> dict[str, str]:
    headers = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            msg = f"Invalid header {value!r}, expected 'Name: value'"
            raise click.BadParameter(msg, param_hint="-H")
        headers[name.strip()] = content.strip()
    return headers


@click.group()
@click.option("--debug", is_flag=True, help="Log debug messages")
def cli(debug: bool) -> None:  # noqa: FBT001
    """easycdm: EME style CDM for license acquisition"""
    config = Config()
    setup_logger(logger, logging.DEBUG if debug else config.LOG_LEVEL)


@cli.command("license")
@click.argument("url")
@click.option("--pssh", required=True, help="Base64 PSSH box or init data")
@click.option(
    "--client",
    "client_path",
    envvar="EASYCDM_CLIENT",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Client identity (.wvd, .prd or unpacked directory)",
)
@click.option(
    "-H",
    "--header",
    "headers",
    multiple=True,
    help="Extra license request header, 'Name: value'",
)
@click.option("--privacy", is_flag=True, help="Use Widevine privacy mode")
def license_(
    url: str,
    pssh: str,
    client_path: Path,
    headers: tuple[str, ...],
    privacy: bool,  # noqa: FBT001
) -> None:
    """Acquire a license from URL and print kid:key pairs"""
    try:
        cdm = create_cdm(load_client(client_path), privacy_mode=privacy)
        keys = fetch_decryption_keys(cdm, pssh, url, headers=_parse_headers(headers))
    except CdmError as e:
        raise click.ClickException(str(e))
    for key in keys:
        click.echo(str(key))


@cli.group()
def client() -> None:
    """Inspect and convert client identities"""


@client.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
def info(path: Path) -> None:
    """Show a client identity"""
    try:
        identity = load_client(path)
    except CdmError as e:
        raise click.ClickException(str(e))
    if isinstance(identity, WidevineClient):
        click.echo("Widevine client")
        click.echo(f"  system id: {identity.system_id}")
        click.echo(f"  security level: L{identity.security_level}")
        click.echo(f"  device type: {identity.device_type.name}")
        for name, value in sorted(identity.info.items()):
            click.echo(f"  {name}: {value}")
    else:
        click.echo("PlayReady device")
        click.echo(f"  name: {identity.group_certificate.name}")
        click.echo(f"  security level: SL{identity.security_level}")
        click.echo(f"  certificates: {len(identity.group_certificate)}")


@client.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("-o", "--output", type=click.Path(path_type=Path), required=True)
@click.option(
    "--type",
    "device_type",
    type=click.Choice([t.name.lower() for t in DeviceType]),
    default="android",
)
@click.option("--level", type=click.IntRange(1, 3), default=3)
def pack(path: Path, output: Path, device_type: str, level: int) -> None:
    """Pack an unpacked Widevine client directory into a .wvd file"""
    try:
        identity = load_client(path)
        if not isinstance(identity, WidevineClient):
            msg = f"{path} does not hold an unpacked Widevine client"
            raise click.ClickException(msg)
        identity.device_type = DeviceType[device_type.upper()]
        identity.security_level = level
        output.write_bytes(identity.dumps())
    except CdmError as e:
        raise click.ClickException(str(e))
    click.echo(f"Packed {identity.label} to {output}")


@client.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-o", "--output", type=click.Path(path_type=Path), required=True)
def unpack(path: Path, output: Path) -> None:
    """Unpack a .wvd file into a client id blob and a PEM private key"""
    try:
        identity = WidevineClient.load(path)
    except CdmError as e:
        raise click.ClickException(str(e))
    client_id, private_key = identity.unpack()
    output.mkdir(parents=True, exist_ok=True)
    (output / "client_id.bin").write_bytes(client_id)
    (output / "private_key.pem").write_bytes(private_key)
    click.echo(f"Unpacked {identity.label} to {output}")


@client.command()
@click.option(
    "--group-key",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
)
@click.option(
    "--group-cert",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
)
@click.option("-o", "--output", type=click.Path(path_type=Path), required=True)
def provision(group_key: Path, group_cert: Path, output: Path) -> None:
    """Provision a PlayReady device below a group certificate"""
    try:
        device = Device.provision(
            EccKey.loads(group_key.read_bytes()),
            CertificateChain.load(group_cert),
        )
    except CdmError as e:
        raise click.ClickException(str(e))
    output.write_bytes(device.dumps())
    click.echo(f"Provisioned {device} to {output}")


@cli.command()
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", default=None, type=int, help="Port to bind to")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="JSON service configuration (default: EASYCDM_CONFIG)",
)
@click.option(
    "--client",
    "clients",
    multiple=True,
    type=click.Path(exists=True, path_type=Path),
    help="Serve this client identity; may be repeated",
)
@click.option("--secret", default=None, help="Secret allowed to use --client identities")
def serve(
    host: str | None,
    port: int | None,
    config_path: Path | None,
    clients: tuple[Path, ...],
    secret: str | None,
) -> None:
    """Start the remote CDM service"""
    config = Config()
    try:
        server_config = config.load_server_config(config_path)
    except CdmError as e:
        raise click.ClickException(str(e))

    if host:
        server_config.host = host
    if port:
        server_config.port = port
    if clients:
        if not secret:
            msg = "--client needs --secret"
            raise click.UsageError(msg)
        server_config.clients.extend(str(path) for path in clients)
        server_config.users[secret] = UserConfig(
            name="cli", clients=[path.stem for path in clients]
        )

    start_server(server_config, config=config)


if __name__ == "__main__":
    cli()
