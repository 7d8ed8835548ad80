import typer
import asyncio
import base64
import base58
from .config import Settings, configure_logging
from .submitter import BundleSubmitter, COMMITMENT_LEVELS

app = typer.Typer(help="Jito bundle fan-out client")

ENCODINGS = ("auto", "base64", "base58", "raw")

def list_endpoints():
    """Show the configured relay endpoints in the order used to pick a winner."""
    settings = Settings.from_env()
    policy = settings.retry_policy()

    for position, endpoint in enumerate(settings.endpoints, start=1):
        print(f"{position}. {endpoint.code:10}  {endpoint.url}")
    print(
        f"max_attempts={policy.max_attempts}  request_timeout={policy.request_timeout:g}s  "
        f"confirm_timeout={settings.confirm_timeout:g}s"
    )

def submit(
    tx_paths: list[str] = typer.Argument(..., help="Signed transaction files, in bundle order"),
    commitment: str = typer.Option("confirmed", help="processed|confirmed|finalized"),
    encoding: str = typer.Option("auto", help="auto|base64|base58|raw"),
    payer: str = typer.Option(None, help="Payer shown in logs (defaults to the first fee payer)"),
    rpc_url: str = typer.Option(None, help="Ledger RPC URL (defaults to BUNDLE_FANOUT_RPC_URL)"),
):
    """Submit a bundle of signed transactions to every relay endpoint."""
    if commitment not in COMMITMENT_LEVELS:
        raise typer.BadParameter(f"commitment must be one of {', '.join(COMMITMENT_LEVELS)}")
    if encoding not in ENCODINGS:
        raise typer.BadParameter(f"encoding must be one of {', '.join(ENCODINGS)}")

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    transactions = [_load_transaction(path, encoding) for path in tx_paths]
    if payer is None:
        payer = str(transactions[0].message.account_keys[0])

    async def run():
        from solana.rpc.async_api import AsyncClient

        async with AsyncClient(rpc_url or settings.rpc_url) as connection:
            submitter = BundleSubmitter(
                connection,
                endpoints=settings.endpoints,
                policy=settings.retry_policy(),
                confirm_timeout=settings.confirm_timeout,
            )
            result = await submitter.submit_bundle(transactions, payer, commitment)
            await submitter.drain()
            return result

    result = asyncio.run(run())
    if not result.accepted:
        print(result.describe())
        raise typer.Exit(code=1)

    print(f"Signature: {result.signature}")
    if result.bundle_id:
        print(f"Bundle ID: {result.bundle_id}")
    print(f"Explorer: https://solscan.io/tx/{result.signature}")
    if not result.confirmed:
        print("Confirmation pending - bundle was sent, check status manually")

def _decode(data: bytes, encoding: str) -> bytes:
    if encoding == "base64":
        return base64.b64decode(data.strip(), validate=True)
    if encoding == "base58":
        return base58.b58decode(data.strip())
    return data

def _load_transaction(path: str, encoding: str):
    from solders.transaction import VersionedTransaction

    with open(path, "rb") as f:
        data = f.read()

    # base58 text is also valid base64 alphabet, so "auto" tries each in turn
    candidates = ("base64", "base58", "raw") if encoding == "auto" else (encoding,)
    for candidate in candidates:
        try:
            return VersionedTransaction.from_bytes(_decode(data, candidate))
        except Exception:
            # wrong encoding or not a transaction; try the next candidate
            continue
    raise typer.BadParameter(f"{path} is not a signed transaction ({encoding})")

app.command("list-endpoints")(list_endpoints)
app.command()(submit)

if __name__ == "__main__":
    app()
