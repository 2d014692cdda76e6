"""CLI entrypoint for firemap_geo."""

from __future__ import annotations

import argparse
import asyncio
import json

from firemap_geo.logging_config import setup_logging


def main(argv: list[str] | None = None) -> None:
    setup_logging()

    parser = argparse.ArgumentParser(prog="firemap-geo")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve")
    sub.add_parser("stats")

    resolve_parser = sub.add_parser("resolve")
    resolve_parser.add_argument("--region", default="")
    resolve_parser.add_argument("--municipality", default="")
    resolve_parser.add_argument("--location", default="")

    alert_parser = sub.add_parser("alert")
    alert_parser.add_argument("text")
    alert_parser.add_argument("--context", default=None)
    alert_parser.add_argument("--token", action="append", default=[])

    parse_parser = sub.add_parser("parse-alert")
    parse_parser.add_argument("text")

    args = parser.parse_args(argv)

    if args.command == "serve":
        _serve()
    elif args.command == "stats":
        _stats()
    elif args.command == "resolve":
        asyncio.run(_resolve(args.region, args.municipality, args.location))
    elif args.command == "alert":
        asyncio.run(_alert(args.text, args.token, args.context))
    elif args.command == "parse-alert":
        _parse_alert(args.text)


def _print(data: dict) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


def _serve() -> None:
    import uvicorn

    from firemap_geo.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "firemap_geo.api:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=(settings.env == "development"),
        log_level=settings.log_level.lower(),
    )


def _stats() -> None:
    from firemap_geo.gazetteer import GazetteerIndex

    _print(GazetteerIndex.from_config().stats())


async def _resolve(region: str, municipality: str, location: str) -> None:
    from firemap_geo.models import LocationQuery
    from firemap_geo.resolver import LocationResolver

    resolver = LocationResolver.create()
    try:
        query = LocationQuery(region=region, municipality=municipality, specific_location=location)
        result = await resolver.resolve(query)
        _print(result.model_dump(mode="json"))
    finally:
        await resolver.aclose()


async def _alert(text: str, tokens: list[str], context: str | None) -> None:
    from firemap_geo.resolver import LocationResolver

    resolver = LocationResolver.create()
    try:
        result = await resolver.resolve_alert(text, tokens=tokens or None, regional_context=context)
        _print(result.model_dump(mode="json"))
    finally:
        await resolver.aclose()


def _parse_alert(text: str) -> None:
    from firemap_geo.alerts import parse_alert

    _print(parse_alert(text).model_dump(mode="json"))


if __name__ == "__main__":
    main()
