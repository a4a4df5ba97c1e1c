import argparse
from contextlib import asynccontextmanager

import pytest

from cli import cli


@pytest.fixture
def cli_session(monkeypatch, session_factory):
    @asynccontextmanager
    async def _session():
        async with session_factory() as session:
            yield session
            await session.commit()

    monkeypatch.setattr(cli, "transaction_session", _session)


def test_decode_link_command(capsys):
    assert cli.main(["decode-link", "ACME01-SOUTH02-CERT-AB12CD34EFG"]) == 0
    out = capsys.readouterr().out
    assert "SOUTH02" in out
    assert "certification" in out
    assert "hierarchical" in out


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "usage" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_check_hierarchy_command(cli_session, make_company, capsys):
    root = await make_company("ACME01")
    await make_company("SOUTH02", parent=root)

    assert await cli.cmd_check_hierarchy(argparse.Namespace()) == 0
    assert "acyclic" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_sync_inheritance_command(cli_session, make_company, make_offer, capsys):
    root = await make_company("ACME01")
    south = await make_company("SOUTH02", parent=root)
    await make_offer(root)

    assert await cli.cmd_sync_inheritance(argparse.Namespace(parent_company_id=root.id)) == 0
    out = capsys.readouterr().out
    assert "Created 1 inherited offers" in out
    assert f"company {south.id}: 1" in out


@pytest.mark.asyncio
async def test_resolve_link_command(cli_session, make_company, make_offer, capsys):
    root = await make_company("ACME01")
    await make_company("SOUTH02", parent=root)
    offer = await make_offer(root, link="ACME01-AB12CD34EFG")

    assert await cli.cmd_resolve_link(argparse.Namespace(link="ACME01-SOUTH02-CERT-AB12CD34EFG")) == 0
    out = capsys.readouterr().out
    assert f"offer {offer.id}" in out
    assert "ACME01 > SOUTH02" in out
