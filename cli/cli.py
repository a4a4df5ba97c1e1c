# cli/cli.py
"""
Operator commands for the partner referral service.
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from typing import Callable, Dict, Optional

from partner_api.core.exceptions import BaseAPIException
from partner_api.core.logging import configure_structlog
from partner_api.db.session import dispose_engine, transaction_session
from partner_api.services.company_hierarchy import CompanyHierarchyResolver
from partner_api.services.offer_inheritance import OfferInheritanceEngine
from partner_api.services.referral_codec import decode
from partner_api.services.referral_resolver import ReferralLinkResolver


def _supports_color() -> bool:
    """Check if terminal supports ANSI color codes."""
    if sys.platform == "win32":
        return os.getenv("TERM") == "xterm" or os.getenv("ANSICON") is not None
    return sys.stdout.isatty()


SUPPORTS_COLOR = _supports_color()

GREEN = '\033[92m' if SUPPORTS_COLOR else ''
RED = '\033[91m' if SUPPORTS_COLOR else ''
YELLOW = '\033[93m' if SUPPORTS_COLOR else ''
BLUE = '\033[94m' if SUPPORTS_COLOR else ''
RESET = '\033[0m' if SUPPORTS_COLOR else ''


def print_success(message: str):
    print(f"{GREEN}[✓]{RESET} {message}")


def print_error(message: str):
    print(f"{RED}[✗]{RESET} {message}")


def print_warning(message: str):
    print(f"{YELLOW}[!]{RESET} {message}")


def print_info(message: str):
    print(f"{BLUE}[i]{RESET} {message}")


async def cmd_decode_link(args: argparse.Namespace) -> int:
    """Command: show how a referral link is read, without touching the database."""
    link = decode(args.link)
    print_info(f"parent code:   {link.parent_code}")
    print_info(f"child code:    {link.child_code or '-'}")
    print_info(f"type tag:      {link.type_tag or '-'}")
    print_info(f"offer type:    {link.offer_type.value if link.offer_type else '-'}")
    print_info(f"hash:          {link.hash or '-'}")
    if link.is_hierarchical:
        print_success("hierarchical (sub-partner) link")
    else:
        print_success("direct link")
    return 0


async def cmd_resolve_link(args: argparse.Namespace) -> int:
    """Command: resolve a referral link against the database."""
    async with transaction_session() as session:
        resolution = await ReferralLinkResolver(session).resolve(args.link)

    chain = " > ".join(c.code for c in resolution.attribution_chain)
    print_success(f"offer {resolution.offer.id} ({resolution.offer.name}) via {resolution.stage} match")
    print_info(f"  credited company: {resolution.attributed_company_id}")
    print_info(f"  attribution chain: {chain}")
    if resolution.stage == "degraded":
        print_warning("  claimed child is not a child of the parent; no sub-partner attribution")
    return 0


async def cmd_check_hierarchy(args: argparse.Namespace) -> int:
    """Command: verify the company tree has no cycles."""
    async with transaction_session() as session:
        report = await CompanyHierarchyResolver(session).verify_acyclic()

    print_info(f"{report.company_count} companies, {len(report.root_ids)} roots")
    if report.is_acyclic:
        print_success("Company hierarchy is acyclic")
        return 0

    print_error(f"{len(report.orphaned_ids)} companies are unreachable from any root (cycle)")
    for company_id in report.orphaned_ids:
        print_error(f"  company {company_id}")
    return 1


async def cmd_sync_inheritance(args: argparse.Namespace) -> int:
    """Command: create missing inherited offers for a parent's direct children."""
    async with transaction_session() as session:
        report = await OfferInheritanceEngine(session).sync_inherited_offers(args.parent_company_id)

    print_success(f"Created {report.total_created} inherited offers")
    for child_id, created in sorted(report.created.items()):
        print_info(f"  company {child_id}: {created}")
    for warning in report.warnings:
        print_warning(f"  {warning}")
    return 1 if report.warnings else 0


COMMANDS: Dict[str, Callable] = {
    'decode-link': cmd_decode_link,
    'resolve-link': cmd_resolve_link,
    'check-hierarchy': cmd_check_hierarchy,
    'sync-inheritance': cmd_sync_inheritance,
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with all commands."""
    parser = argparse.ArgumentParser(description='Partner referral CLI')
    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    decode_parser = subparsers.add_parser('decode-link', help='Decode a referral link')
    decode_parser.add_argument('link')

    resolve_parser = subparsers.add_parser('resolve-link', help='Resolve a referral link to an offer')
    resolve_parser.add_argument('link')

    subparsers.add_parser('check-hierarchy', help='Check the company tree for cycles')

    sync_parser = subparsers.add_parser('sync-inheritance', help='Sync inherited offers for one parent')
    sync_parser.add_argument('parent_company_id', type=int)

    return parser


async def _run(command_func: Callable, parsed_args: argparse.Namespace) -> int:
    try:
        return await command_func(parsed_args)
    finally:
        await dispose_engine()


def main(args: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    configure_structlog()
    command_func = COMMANDS[parsed_args.command]

    try:
        return asyncio.run(_run(command_func, parsed_args))
    except KeyboardInterrupt:
        print_error("Interrupted by user")
        return 130
    except BaseAPIException as e:
        print_error(f"{e.code}: {e.message}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
