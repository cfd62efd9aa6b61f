from __future__ import annotations

import argparse
from urllib.parse import parse_qs

from .app import DEFAULT_SCHEMAS, create_state_app
from .audit import format_resolution
from .resolver import StateResolver
from .serializer import json_dumps, to_query_string


def main() -> None:
    parser = argparse.ArgumentParser(description="Resolve and serve application state")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="run the HTTP service")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    resolve = subparsers.add_parser("resolve", help="resolve a query string and print the result")
    resolve.add_argument("--schema", choices=sorted(DEFAULT_SCHEMAS), default="explorer")
    resolve.add_argument("--query", default="")
    resolve.add_argument("--explain", action="store_true", help="print the resolution audit trail")
    args = parser.parse_args()

    if args.command == "serve":
        app = create_state_app()
        app.run(host=args.host, port=args.port, debug=False)
        return

    resolver = StateResolver(DEFAULT_SCHEMAS[args.schema])
    resolved = resolver.resolve_initial(parse_qs(args.query.lstrip("?"), keep_blank_values=True))
    query = to_query_string(resolver.serialize(resolved.state))
    if args.explain:
        print(format_resolution(resolved, query=query, view_field=resolver.views.view_field))
    else:
        print(json_dumps({"state": resolved.state, "view": resolved.view, "query": query}))


if __name__ == "__main__":
    main()
