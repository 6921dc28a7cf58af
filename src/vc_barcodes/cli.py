"""
Command-line interface for VC barcodes.

Usage:
    vcb keygen --key-id did:web:example.com#key-1 --out issuer
    vcb issue credential.json --key issuer.pem --key-id did:web:example.com#key-1
    vcb status-list --key issuer.pem --key-id did:web:example.com#key-1 \\
        --id https://example.com/status/revocation/0 --set 42
    vcb verify payload.txt --qr
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, NoReturn

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from vc_barcodes.canonical import claims_from_json, claims_to_json
from vc_barcodes.config import CodecConfig
from vc_barcodes.dictionary import get_dictionary
from vc_barcodes.errors import VCBarcodeError
from vc_barcodes.issuer import BarcodeIssuer
from vc_barcodes.keys import (
    KEY_TYPES,
    generate_private_key,
    load_private_key,
    private_key_to_pem,
    public_key_from_jwk,
    public_key_to_jwk,
)
from vc_barcodes.optical import mrz_optical_data
from vc_barcodes.proof import SigningKey
from vc_barcodes.qr_text import decode_qr_text, encode_qr_text
from vc_barcodes.resolver import HttpTrustResolver, StaticTrustResolver
from vc_barcodes.statuslist import (
    CredentialStatus,
    StatusList,
    StatusPurpose,
    StatusReference,
    issue_status_list,
)
from vc_barcodes.verifier import (
    BarcodeVerifier,
    SignatureCheck,
    VerificationResult,
)

console = Console()

# Reported as input errors, exit code 2. Covers InvalidKeyError and JSONDecodeError.
INPUT_ERRORS = (VCBarcodeError, OSError, ValueError)


def format_result(result: VerificationResult) -> None:
    """Format and print verification result."""
    if result.is_verified:
        status_icon = "[bold green]VERIFIED[/]"
        panel_style = "green"
    else:
        status_icon = "[bold red]REJECTED[/]"
        panel_style = "red"

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Outcome", status_icon)
    if result.reason:
        table.add_row("Reason", f"[red]{result.reason.value}[/]")
    table.add_row("Stage", result.stage.value)
    if result.key_id:
        table.add_row("Key ID", result.key_id)

    if result.signature == SignatureCheck.VALID:
        table.add_row("Signature", "[green]Valid[/]")
    elif result.signature == SignatureCheck.INVALID:
        table.add_row("Signature", "[red]Invalid[/]")
    else:
        table.add_row("Signature", "[dim]Not checked[/]")

    cs = result.credential_status
    if cs == CredentialStatus.VALID:
        status_str = "[green]Valid[/]"
    elif cs == CredentialStatus.REVOKED:
        status_str = "[red]Revoked[/]"
    elif cs == CredentialStatus.SUSPENDED:
        status_str = "[yellow]Suspended[/]"
    elif cs == CredentialStatus.UNKNOWN:
        status_str = "[yellow]Unknown[/]"
    else:
        status_str = "[dim]Not checked[/]"
    table.add_row("Credential Status", status_str)
    for check in result.status_checks:
        table.add_row("Status List", f"{check.status_list_id or '-'} [{check.index}]")

    if result.detail:
        table.add_row("Detail", result.detail)

    console.print(Panel(table, title="Verification Result", border_style=panel_style))

    if result.claims is not None:
        console.print_json(data=claims_to_json(result.claims))


def result_to_json(result: VerificationResult) -> dict[str, Any]:
    return {
        "outcome": result.outcome.value,
        "verified": result.is_verified,
        "reason": result.reason.value if result.reason else None,
        "stage": result.stage.value,
        "key_id": result.key_id,
        "signature": result.signature.value,
        "credential_status": result.credential_status.value,
        "status_checks": [
            {
                "status": check.status.value,
                "purpose": check.purpose,
                "index": check.index,
                "status_list_id": check.status_list_id,
                "message": check.message,
            }
            for check in result.status_checks
        ],
        "detail": result.detail,
        "claims": claims_to_json(result.claims) if result.claims is not None else None,
    }


def fail(message: str, json_output: bool = False) -> NoReturn:
    """Report an input error and exit with code 2."""
    if json_output:
        console.print_json(data={"error": message})
    else:
        console.print(f"[red]Error:[/] {message}")
    sys.exit(2)


def read_source(source: str) -> bytes:
    """Read from a file path, or from stdin when ``source`` is "-"."""
    if source == "-":
        return sys.stdin.buffer.read()
    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {source}")
    return path.read_bytes()


def load_signing_key(key_path: str, key_id: str) -> SigningKey:
    return SigningKey(private_key=load_private_key(key_path), key_id=key_id)


def read_optical_data(bound_data: str | None, mrz: str | None) -> bytes:
    """Optical data from a raw file, or the digest of an MRZ text file."""
    if bound_data and mrz:
        raise click.UsageError("--bound-data and --mrz are mutually exclusive")
    if mrz:
        return mrz_optical_data(Path(mrz).read_text().splitlines())
    return Path(bound_data).read_bytes() if bound_data else b""


def codec_config(**overrides: Any) -> CodecConfig:
    """``CodecConfig.from_env()`` with the options given on the command line."""
    return replace(
        CodecConfig.from_env(),
        **{k: v for k, v in overrides.items() if v is not None},
    )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log pipeline stages to stderr")
@click.version_option(package_name="vc-barcodes")
def main(verbose: bool) -> None:
    """Encode, sign and verify Verifiable Credential barcodes."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@main.command()
@click.option("--type", "key_type", type=click.Choice(KEY_TYPES), default="ES256", show_default=True)
@click.option("--key-id", help="Verification method id to put in the JWK (kid)")
@click.option("--out", "out_prefix", required=True, help="Writes OUT.pem and OUT.jwk.json")
def keygen(key_type: str, key_id: str | None, out_prefix: str) -> None:
    """Generate an issuer key pair."""
    private_key = generate_private_key(key_type)
    jwk: dict[str, Any] = public_key_to_jwk(private_key.public_key())
    if key_id:
        jwk["kid"] = key_id

    pem_path = Path(f"{out_prefix}.pem")
    jwk_path = Path(f"{out_prefix}.jwk.json")
    pem_path.write_bytes(private_key_to_pem(private_key))
    jwk_path.write_text(json.dumps(jwk, indent=2) + "\n")

    console.print(f"[green]Wrote[/] {pem_path} and {jwk_path}")
    console.print_json(data=jwk)


@main.command()
@click.argument("claims_file")
@click.option("--key", "key_path", required=True, type=click.Path(exists=True), help="PEM private key")
@click.option("--key-id", required=True, envvar="VCB_KEY_ID", help="Verification method id")
@click.option("--bound-data", type=click.Path(exists=True), help="Optical data to bind into the proof")
@click.option("--mrz", type=click.Path(exists=True), help="MRZ text file whose three lines the proof is bound to")
@click.option("--qr", "qr_text", is_flag=True, help="Output VC1- QR text instead of raw bytes")
@click.option("-o", "--output", help="Output file (default: stdout)")
@click.option("--max-payload-bytes", type=int, envvar="VCB_MAX_PAYLOAD_BYTES", help="Symbol capacity")
@click.option("--dictionary-version", type=int, envvar="VCB_DICTIONARY_VERSION")
def issue(
    claims_file: str,
    key_path: str,
    key_id: str,
    bound_data: str | None,
    mrz: str | None,
    qr_text: bool,
    output: str | None,
    max_payload_bytes: int | None,
    dictionary_version: int | None,
) -> None:
    """Encode and sign the JSON claims in CLAIMS_FILE ("-" for stdin)."""
    try:
        config = codec_config(
            max_payload_bytes=max_payload_bytes,
            dictionary_version=dictionary_version,
        )
        document = json.loads(read_source(claims_file))
        if not isinstance(document, dict):
            raise ValueError("Claims must be a JSON object")
        claims = claims_from_json(document, get_dictionary(config.dictionary_version))
        signing_key = load_signing_key(key_path, key_id)
        optical = read_optical_data(bound_data, mrz)

        payload = BarcodeIssuer(signing_key, config).encode(claims, optical)
    except INPUT_ERRORS as e:
        fail(str(e))

    data = payload.to_bytes()
    out: bytes = encode_qr_text(data).encode("ascii") if qr_text else data
    if output:
        Path(output).write_bytes(out)
        console.print(
            f"[green]Issued[/] {len(data)} byte payload "
            f"({payload.envelope.algorithm_name}) to {output}"
        )
    else:
        click.echo(out, nl=False)


@main.command("status-list")
@click.option("--key", "key_path", required=True, type=click.Path(exists=True), help="PEM private key")
@click.option("--key-id", required=True, envvar="VCB_KEY_ID", help="Verification method id")
@click.option("--id", "status_list_id", required=True, help="Status list credential URL")
@click.option("--length", type=int, envvar="VCB_STATUS_LIST_LENGTH", help="Bits in the list")
@click.option("--purpose", type=click.Choice([p.value for p in StatusPurpose]), envvar="VCB_STATUS_PURPOSE")
@click.option("--set", "set_indices", type=int, multiple=True, help="Index to mark (repeatable)")
@click.option("-o", "--output", required=True, help="Output file")
def status_list(
    key_path: str,
    key_id: str,
    status_list_id: str,
    length: int | None,
    purpose: str | None,
    set_indices: tuple[int, ...],
    output: str,
) -> None:
    """Issue a signed bitstring status list credential."""
    try:
        config = codec_config(status_list_length=length, status_purpose=purpose)
        bits = StatusList(config.status_list_length)
        for index in set_indices:
            bits.set(index)
        credential = issue_status_list(
            bits,
            status_list_id,
            load_signing_key(key_path, key_id),
            status_purpose=config.status_purpose,
        )
    except INPUT_ERRORS as e:
        fail(str(e))

    Path(output).write_bytes(credential)
    console.print(
        f"[green]Issued[/] {config.status_purpose} list {status_list_id} "
        f"({len(credential)} bytes, {len(set_indices)} set) to {output}"
    )


@main.command()
@click.argument("source", required=True)
@click.option("--qr", "qr_text", is_flag=True, help="SOURCE holds VC1- QR text")
@click.option(
    "--public-key",
    "public_keys",
    type=click.Path(exists=True),
    multiple=True,
    help="Trusted JWK file with a kid (repeatable); disables did:web resolution",
)
@click.option(
    "--status-list",
    "status_lists",
    type=(str, click.Path(exists=True)),
    multiple=True,
    help="Status list URL and the file holding it (repeatable)",
)
@click.option("--status-list-id", help="Status list to check instead of the credential's entry")
@click.option("--status-index", type=int, help="Index in --status-list-id")
@click.option("--bound-data", type=click.Path(exists=True), help="Optical data the proof is bound to")
@click.option("--mrz", type=click.Path(exists=True), help="MRZ text file the proof is bound to")
@click.option("--no-status", is_flag=True, help="Accept credentials whose status cannot be confirmed")
@click.option("--no-ssl-verify", is_flag=True, help="Disable SSL certificate verification")
@click.option("--timeout", type=float, default=30.0, help="HTTP request timeout in seconds")
@click.option("--json-output", is_flag=True, help="Output result as JSON")
def verify(
    source: str,
    qr_text: bool,
    public_keys: tuple[str, ...],
    status_lists: tuple[tuple[str, str], ...],
    status_list_id: str | None,
    status_index: int | None,
    bound_data: str | None,
    mrz: str | None,
    no_status: bool,
    no_ssl_verify: bool,
    timeout: float,
    json_output: bool,
) -> None:
    """Verify a barcode payload.

    SOURCE is a file with the scanned payload, or "-" for stdin.

    Examples:

        vcb verify payload.bin

        vcb verify payload.txt --qr --public-key issuer.jwk.json \\
            --status-list https://example.com/status/revocation/0 status.bin
    """
    if (status_list_id is None) != (status_index is None):
        fail("--status-list-id and --status-index must be given together", json_output)

    try:
        raw = read_source(source)
        data = decode_qr_text(raw.decode("ascii").strip()) if qr_text else raw

        resolver: Any
        if public_keys or status_lists:
            resolver = StaticTrustResolver()
            for path in public_keys:
                jwk = json.loads(Path(path).read_text())
                if "kid" not in jwk:
                    raise ValueError(f"JWK in {path} has no kid")
                resolver.add_key(jwk["kid"], public_key_from_jwk(jwk))
            for list_id, path in status_lists:
                resolver.add_status_list(list_id, Path(path).read_bytes())
        else:
            resolver = HttpTrustResolver(timeout=timeout, verify_ssl=not no_ssl_verify)

        config = codec_config(require_status=False if no_status else None)
        reference = (
            StatusReference(status_list_id, status_index)
            if status_list_id is not None and status_index is not None
            else None
        )
        optical = read_optical_data(bound_data, mrz)
        result = BarcodeVerifier(resolver, config).verify(data, reference, optical)
    except INPUT_ERRORS as e:
        fail(str(e), json_output)

    if json_output:
        console.print_json(data=result_to_json(result))
    else:
        format_result(result)

    sys.exit(0 if result.is_verified else 1)


if __name__ == "__main__":
    main()
