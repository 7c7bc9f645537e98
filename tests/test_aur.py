from dataclasses import dataclass
from urllib.parse import parse_qs, urlparse

import pytest
import responses

from aurtool import text as term
from aurtool.aur import (
    AURClient,
    AURSearchError,
    AURWarnings,
    NoQueryError,
    Pkg,
    SearchBy,
    aur_info,
    aur_info_print,
    filter_debug_pkgs,
    get_package_names_by_source,
    get_remote_packages,
    remove_invalid_targets,
)
from aurtool.parser import TargetMode

RPC_URL = "https://aur.archlinux.org/rpc"


@pytest.fixture(autouse=True)
def no_color(monkeypatch):
    monkeypatch.setattr(term, "use_color", False)


@pytest.fixture
def rpc():
    with responses.RequestsMock() as rsps:
        yield rsps


class FakeClient:
    def __init__(self, packages=None, error=None):
        self.packages = {pkg.name: pkg for pkg in packages or []}
        self.error = error
        self.calls = []

    def info(self, names):
        self.calls.append(list(names))
        if self.error is not None:
            raise self.error
        return [self.packages[name] for name in names if name in self.packages]


@dataclass
class FakePackage:
    name: str


class FakeExecutor:
    def __init__(self, local, synced):
        self.local = [FakePackage(name) for name in local]
        self.synced = set(synced)

    def local_packages(self):
        return self.local

    def sync_package(self, name):
        return FakePackage(name) if name in self.synced else None


def test_aur_info_splits_requests():
    client = FakeClient([Pkg(name=n, maintainer="m") for n in "abcde"])
    info = aur_info(client, list("abcde"), AURWarnings(), 2)
    assert sorted(call for chunk in client.calls for call in chunk) == list("abcde")
    assert sorted(client.calls) == [["a", "b"], ["c", "d"], ["e"]]
    assert sorted(pkg.name for pkg in info) == list("abcde")


def test_aur_info_collects_warnings():
    client = FakeClient([
        Pkg(name="orphan", maintainer=""),
        Pkg(name="stale", maintainer="m", out_of_date=1),
        Pkg(name="ok", maintainer="m"),
        Pkg(name="quiet", maintainer=""),
    ])
    warnings = AURWarnings(ignore={"quiet", "hidden"})
    aur_info(client, ["orphan", "stale", "ok", "gone", "quiet", "hidden"], warnings, 10)
    assert warnings.missing == ["gone"]
    assert warnings.orphans == ["orphan"]
    assert warnings.out_of_date == ["stale"]


def test_aur_info_propagates_errors():
    client = FakeClient(error=ValueError("boom"))
    with pytest.raises(ValueError, match="boom"):
        aur_info(client, ["a"], AURWarnings(), 5)


def test_aur_info_rejects_bad_split():
    with pytest.raises(ValueError):
        aur_info(FakeClient(), ["a"], AURWarnings(), 0)


def test_aur_info_print_reports(capsys):
    client = FakeClient([Pkg(name="a", maintainer="m")])
    info = aur_info_print(client, ["a", "b"], 5)
    out = capsys.readouterr().out
    assert [pkg.name for pkg in info] == ["a"]
    assert "Querying AUR..." in out
    assert "Missing AUR Packages:  b\n" in out


def test_filter_debug_pkgs():
    assert filter_debug_pkgs(["a", "a-debug", "b"]) == (["a", "b"], ["a-debug"])


def test_warnings_print(capsys):
    AURWarnings(missing=["a", "a-debug"], orphans=["o"]).print()
    assert capsys.readouterr().out == (
        " -> Missing AUR Packages:  a\n"
        " -> Missing AUR Debug Packages:  a-debug\n"
        " -> Orphaned AUR Packages:  o\n"
    )


def test_warnings_print_nothing(capsys):
    AURWarnings().print()
    assert capsys.readouterr().out == ""


def test_error_messages():
    assert str(AURSearchError(ValueError("boom"))) == "Error during AUR search: boom\n"
    assert str(NoQueryError()) == "no query was executed"


def test_package_names_by_source():
    executor = FakeExecutor(["a", "b", "c"], ["a", "c"])
    assert get_package_names_by_source(executor) == (["a", "c"], ["b"])


def test_remote_packages():
    executor = FakeExecutor(["a", "b", "c"], ["a"])
    remote, names = get_remote_packages(executor)
    assert names == ["b", "c"]
    assert [pkg.name for pkg in remote] == names


@pytest.mark.parametrize(
    ("mode", "expected"),
    [
        (TargetMode.ANY, ["aur/a", "core/b", "c"]),
        (TargetMode.AUR, ["aur/a", "c"]),
        (TargetMode.REPO, ["core/b", "c"]),
    ],
)
def test_remove_invalid_targets(mode, expected):
    assert remove_invalid_targets(["aur/a", "core/b", "c"], mode) == expected


def test_client_info(rpc):
    rpc.add(
        responses.GET,
        RPC_URL,
        json={"type": "multiinfo", "results": [
            {"Name": "yay", "Version": "11.0.0-1", "Maintainer": None,
             "OutOfDate": None, "NumVotes": 3, "Depends": ["git"]},
        ]},
    )
    client = AURClient(user_agent="Yay/v1.0.0")
    pkgs = client.info(["yay", "paru"])
    assert [(p.name, p.version, p.maintainer, p.out_of_date, p.num_votes, p.depends)
            for p in pkgs] == [("yay", "11.0.0-1", "", 0, 3, ["git"])]
    request = rpc.calls[0].request
    query = parse_qs(urlparse(request.url).query)
    assert query["type"] == ["info"]
    assert query["arg[]"] == ["yay", "paru"]
    assert request.headers["User-Agent"] == "Yay/v1.0.0"


def test_client_search(rpc):
    rpc.add(responses.GET, RPC_URL, json={"type": "search", "results": [{"Name": "yay"}]})
    pkgs = AURClient().search("yay", SearchBy.MAINTAINER)
    assert [p.name for p in pkgs] == ["yay"]
    query = parse_qs(urlparse(rpc.calls[0].request.url).query)
    assert query["by"] == ["maintainer"]
    assert query["arg"] == ["yay"]


def test_client_error_response(rpc):
    rpc.add(responses.GET, RPC_URL, json={"type": "error", "error": "Too many"})
    with pytest.raises(ValueError, match="Too many"):
        AURClient().search("a", SearchBy.NAME)