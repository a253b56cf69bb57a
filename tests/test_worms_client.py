import asyncio
from functools import partial

import httpx
import pytest

from taxon_resolver.clients._http import RegistryError, _retry_after, fetch_json
from taxon_resolver.clients.worms import (
    record_by_id,
    record_from_worms,
    records_by_match_names,
    records_by_names,
)
from taxon_resolver.config import Settings
from taxon_resolver.diagnostics import check_worms
from taxon_resolver.services.patches import Patches
from taxon_resolver.services.pipeline import resolve_taxa

REST = "https://worms.test/rest"

APHIA_NASO = {
    "AphiaID": 219662, "scientificname": "Naso lituratus", "rank": "Species",
    "status": "accepted", "valid_AphiaID": 219662, "valid_name": "Naso lituratus",
    "kingdom": "Animalia", "phylum": "Chordata", "class": "Teleostei",
    "order": "Acanthuriformes", "family": "Acanthuridae", "genus": "Naso",
}


def run_with(handler, coro_fn):
    async def _go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as cli:
            return await coro_fn(cli)
    return asyncio.run(_go())


def test_record_from_worms():
    rec = record_from_worms(APHIA_NASO)
    assert rec.registry_id == 219662
    assert rec.rank == "species"
    assert rec.accepted_registry_id == 219662
    assert rec.class_name == "Teleostei"
    assert rec.order_name == "Acanthuriformes"


def test_records_by_names_aligned_with_input():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["names"] = request.url.params.get_list("scientificnames[]")
        seen["like"] = request.url.params.get("like")
        return httpx.Response(200, json=[[APHIA_NASO], [], None])

    out = run_with(handler, lambda cli: records_by_names(
        cli, ["Naso lituratus", "Foo bar", "Baz qux"], rest=REST))

    assert seen["path"] == "/rest/AphiaRecordsByNames"
    assert seen["names"] == ["Naso lituratus", "Foo bar", "Baz qux"]
    assert seen["like"] == "false"
    assert [len(x) for x in out] == [1, 0, 0]
    assert out[0][0].scientific_name == "Naso lituratus"


def test_no_content_means_no_match():
    out = run_with(lambda r: httpx.Response(204), lambda cli: records_by_names(cli, ["Foo bar"], rest=REST))
    assert out == [[]]


def test_retry_then_success():
    calls = []

    def handler(request):
        calls.append(1)
        if len(calls) == 1:
            return httpx.Response(503, headers={"Retry-After": "0"})
        return httpx.Response(200, json=APHIA_NASO)

    rec = run_with(handler, lambda cli: record_by_id(cli, 219662, rest=REST))
    assert len(calls) == 2
    assert rec.family == "Acanthuridae"


def test_exhausted_retries_raise():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(500, headers={"Retry-After": "0"})

    with pytest.raises(RegistryError):
        run_with(handler, lambda cli: records_by_names(cli, ["Naso lituratus"], rest=REST, retries=2))
    assert len(calls) == 3


def test_not_found_is_none():
    assert run_with(lambda r: httpx.Response(404), lambda cli: fetch_json(cli, f"{REST}/x")) is None


def test_retry_after_header():
    resp = httpx.Response(429, headers={"Retry-After": "3"})
    assert _retry_after(resp, 0.5) == 3.0
    assert _retry_after(httpx.Response(429), 0.5) == 0.5
    assert _retry_after(None, 0.5) == 0.5


def test_check_worms_reports_status():
    ok = asyncio.run(check_worms(Settings(worms_rest_url=REST),
                                 transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[]))))
    assert ok["status"] == "OK"
    bad = asyncio.run(check_worms(Settings(worms_rest_url=REST),
                                  transport=httpx.MockTransport(lambda r: httpx.Response(503, text="down"))))
    assert bad["status"] == "FALLA"
    assert bad["http"] == 503


@pytest.mark.parametrize("status", [400, 404, 414])
def test_batch_client_error_raises_without_retry(status):
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(status)

    with pytest.raises(RegistryError):
        run_with(handler, lambda cli: records_by_names(cli, ["Naso lituratus", "Chromis viridis"], rest=REST))
    assert len(calls) == 1


def test_record_by_id_not_found_is_none():
    assert run_with(lambda r: httpx.Response(404), lambda cli: record_by_id(cli, 1, rest=REST)) is None


def test_rejected_batch_stops_the_run():
    async def _go():
        transport = httpx.MockTransport(lambda r: httpx.Response(414))
        async with httpx.AsyncClient(transport=transport) as cli:
            return await resolve_taxa(
                ["Naso lituratus", "Chromis viridis"], Settings(), patches=Patches(),
                lookup=partial(records_by_names, cli, rest=REST),
                fetch_record=partial(record_by_id, cli, rest=REST),
            )

    with pytest.raises(RegistryError):
        asyncio.run(_go())


def test_records_by_match_names():
    seen = {}
    fuzzy_hit = dict(APHIA_NASO, match_type="near_1")

    def handler(request):
        seen["path"] = request.url.path
        seen["names"] = request.url.params.get_list("scientificnames[]")
        seen["like"] = request.url.params.get("like")
        return httpx.Response(200, json=[[fuzzy_hit], []])

    out = run_with(handler, lambda cli: records_by_match_names(cli, ["Naso lituratos", "Foo bar"], rest=REST))

    assert seen["path"] == "/rest/AphiaRecordsByMatchNames"
    assert seen["names"] == ["Naso lituratos", "Foo bar"]
    assert seen["like"] is None
    assert out[0][0].scientific_name == "Naso lituratus"
    assert out[0][0].match_type == "near_1"
    assert out[1] == []
