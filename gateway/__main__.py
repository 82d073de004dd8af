import argparse
import os

from dotenv import load_dotenv


def main():
    parser = argparse.ArgumentParser(add_help=True)
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", default=None, type=int, help="Listen port (overrides PORT).")
    parser.add_argument(
        "--env-file",
        default=".env",
        help="dotenv file loaded before reading configuration (missing file is ignored).",
    )
    parser.add_argument(
        "--rpc-provider",
        default=None,
        help="Chain RPC endpoint (overrides RPC_PROVIDER).",
    )
    parser.add_argument(
        "--cors-origin",
        default=None,
        help="Allowed browser origin (overrides CORS_ORIGIN).",
    )
    args = parser.parse_args()

    load_dotenv(args.env_file, override=False)

    if args.rpc_provider:
        os.environ["RPC_PROVIDER"] = args.rpc_provider
    if args.cors_origin:
        os.environ["CORS_ORIGIN"] = args.cors_origin

    from gateway.config import Settings

    port = args.port if args.port is not None else Settings.from_env().port

    import uvicorn

    uvicorn.run("gateway.main:create_app", factory=True, host=args.host, port=port, reload=False)


if __name__ == "__main__":
    main()
