import logging

import pytest

from pkgvault import apt_backend
from pkgvault.apt_backend import AptBackend
from pkgvault.errors import MalformedOutputError, PackageNotFoundError, TransportError
from pkgvault.models import Options, PackageRecord, PackageStatus, StatusTriple

INSTALL_OUTPUT = """\
Reading package lists...
Preparing to unpack .../openssl_3.0.2-0ubuntu1.9_amd64.deb ...
Unpacking openssl (3.0.2-0ubuntu1.9) over (3.0.2-0ubuntu1.8) ...
Setting up libssl3:amd64 (3.0.2-0ubuntu1.9) ...
Setting up libssl3:i386 (3.0.2-0ubuntu1.9) ...
Setting up libssl-dev:amd64 (3.0.2-0ubuntu1.9) ...
Setting up openssl (3.0.2-0ubuntu1.9) ...
Processing triggers for man-db (2.10.2-1) ...
Processing triggers for libc-bin (2.35-0ubuntu3.1) ...
"""

REMOVE_OUTPUT = """\
Reading package lists...
The following packages will be REMOVED:
  zvbi*
Removing zvbi (0.2.35-19) ...
Removing libzvbi0:amd64 (0.2.35-19) ...
Processing triggers for man-db (2.10.2-1) ...
"""

SEARCH_OUTPUT = """\
Sorting...
Full Text Search...
zutty/jammy 0.11.2.20220109.192032+dfsg1-1 amd64
  Efficient full-featured X11 terminal emulator

zvbi/jammy,now 0.2.35-19 amd64 [installed]
  Vertical Blanking Interval (VBI) utilities

libzvbi0/jammy 0.2.35-19 amd64
  Vertical Blanking Interval decoder (VBI) - runtime files
"""

STATUS_OUTPUT = """\
zvbi install ok installed 0.2.35-19
dpkg-query: no packages found matching zutty
libzvbi0:amd64 deinstall ok config-files 0.2.35-18
"""

UPGRADABLE_OUTPUT = """\
Listing...
cloudflared/unknown 2023.4.0 amd64 [upgradable from: 2023.3.1]
libllvm15/jammy-updates 1:15.0.7-0ubuntu0.22.04.1 amd64 [upgradable from: 1:15.0.6-3~ubuntu0.22.04.2]
"""

SHOW_OUTPUT = """\
Package: curl
Version: 7.81.0-1ubuntu1.15
Priority: optional
Section: web
Architecture: amd64
Description-en: command line tool for transferring data with URL syntax
 curl is a command line tool for transferring data with URL syntax.
 Homepage: ignored continuation

Package: curl
Version: 7.81.0-1
Section: web
Architecture: amd64
"""


def test_install_scenario():
    text = "Setting up libssl3:amd64 (3.0.2-0ubuntu1.9) ...\nSetting up openssl (3.0.2-0ubuntu1.9) ...\n"
    records = apt_backend.parse_install_output(text)
    assert records == [
        PackageRecord(
            name="libssl3",
            architecture="amd64",
            version="3.0.2-0ubuntu1.9",
            candidate_version="3.0.2-0ubuntu1.9",
            status=PackageStatus.INSTALLED,
            source_manager="apt",
        ),
        PackageRecord(
            name="openssl",
            architecture="",
            version="3.0.2-0ubuntu1.9",
            candidate_version="3.0.2-0ubuntu1.9",
            status=PackageStatus.INSTALLED,
            source_manager="apt",
        ),
    ]


def test_install_skips_noise():
    records = apt_backend.parse_install_output(INSTALL_OUTPUT)
    assert [(r.name, r.architecture) for r in records] == [
        ("libssl3", "amd64"),
        ("libssl3", "i386"),
        ("libssl-dev", "amd64"),
        ("openssl", ""),
    ]


def test_install_keeps_epoch_and_tilde_versions():
    records = apt_backend.parse_install_output("Setting up libllvm15:amd64 (1:15.0.7-0ubuntu0.22.04.1~ppa1) ...\n")
    assert records[0].version == "1:15.0.7-0ubuntu0.22.04.1~ppa1"


def test_parsers_return_empty_for_noise_only():
    noise = "Reading package lists...\nDone\n"
    assert apt_backend.parse_install_output(noise) == []
    assert apt_backend.parse_remove_output(noise) == []
    assert apt_backend.parse_search_output(noise) == {}
    assert apt_backend.parse_list_upgradable_output(noise) == []
    assert apt_backend.parse_package_info_output(noise) == []
    assert apt_backend.parse_install_output("") == []
    assert apt_backend.parse_list_installed_output("") == []


def test_remove_output():
    records = apt_backend.parse_remove_output(REMOVE_OUTPUT)
    assert [(r.name, r.architecture, r.version, r.status) for r in records] == [
        ("zvbi", "", "0.2.35-19", PackageStatus.AVAILABLE),
        ("libzvbi0", "amd64", "0.2.35-19", PackageStatus.AVAILABLE),
    ]


def test_search_output_one_record_per_block():
    packages = apt_backend.parse_search_output(SEARCH_OUTPUT)
    assert list(packages) == ["zutty", "zvbi", "libzvbi0"]
    zvbi = packages["zvbi"]
    assert zvbi.category == "jammy,now"
    assert zvbi.version == "0.2.35-19"
    assert zvbi.architecture == "amd64"
    for record in packages.values():
        assert "Vertical" not in record.name + record.version + record.category
        assert "Efficient" not in record.name + record.version + record.category


def test_search_output_last_duplicate_wins():
    text = "foo/jammy 1.0 amd64\n  first\n\nfoo/jammy-updates 1.1 amd64\n  second\n"
    packages = apt_backend.parse_search_output(text)
    assert len(packages) == 1
    assert packages["foo"].version == "1.1"
    assert packages["foo"].category == "jammy-updates"


def test_parsing_is_idempotent():
    assert apt_backend.parse_search_output(SEARCH_OUTPUT) == apt_backend.parse_search_output(SEARCH_OUTPUT)
    assert apt_backend.parse_install_output(INSTALL_OUTPUT) == apt_backend.parse_install_output(INSTALL_OUTPUT)


def test_list_installed_output():
    text = "adduser 3.118ubuntu5\nlibssl3:amd64 3.0.2-0ubuntu1.9\n"
    records = apt_backend.parse_list_installed_output(text)
    assert [(r.name, r.architecture, r.version, r.status) for r in records] == [
        ("adduser", "", "3.118ubuntu5", PackageStatus.INSTALLED),
        ("libssl3", "amd64", "3.0.2-0ubuntu1.9", PackageStatus.INSTALLED),
    ]


def test_list_upgradable_scenario():
    records = apt_backend.parse_list_upgradable_output("pkgX/release 2.0 amd64 [upgradable from: 1.0]\n")
    assert records == [
        PackageRecord(
            name="pkgX",
            architecture="amd64",
            version="1.0",
            candidate_version="2.0",
            category="release",
            status=PackageStatus.UPGRADABLE,
            source_manager="apt",
        )
    ]


def test_list_upgradable_skips_listing_banner():
    records = apt_backend.parse_list_upgradable_output(UPGRADABLE_OUTPUT)
    assert [r.name for r in records] == ["cloudflared", "libllvm15"]
    assert records[1].version == "1:15.0.6-3~ubuntu0.22.04.2"
    assert records[1].candidate_version == "1:15.0.7-0ubuntu0.22.04.1"


def test_package_info_one_record_per_stanza():
    records = apt_backend.parse_package_info_output(SHOW_OUTPUT)
    assert [(r.name, r.version, r.category, r.architecture) for r in records] == [
        ("curl", "7.81.0-1ubuntu1.15", "web", "amd64"),
        ("curl", "7.81.0-1", "web", "amd64"),
    ]


def test_status_output():
    triples = list(apt_backend.parse_status_output(STATUS_OUTPUT))
    assert triples == [
        StatusTriple("zvbi", PackageStatus.INSTALLED, "0.2.35-19"),
        StatusTriple("zutty", PackageStatus.UNKNOWN, ""),
        StatusTriple("libzvbi0", PackageStatus.CONFIG_FILES, "0.2.35-18"),
    ]


def test_status_output_not_installed_without_version():
    triples = list(apt_backend.parse_status_output("foo unknown ok not-installed \n"))
    assert triples == [StatusTriple("foo", PackageStatus.AVAILABLE, "")]


def test_verbose_echoes_lines_without_changing_result(caplog):
    with caplog.at_level(logging.INFO, logger="pkgvault"):
        verbose = apt_backend.parse_install_output(INSTALL_OUTPUT, options=Options(verbose=True))
    assert verbose == apt_backend.parse_install_output(INSTALL_OUTPUT)
    assert "apt: Setting up openssl (3.0.2-0ubuntu1.9) ..." in caplog.messages


def test_search_reconciles_with_dpkg_query(fake_runner):
    runner = fake_runner("apt", search=SEARCH_OUTPUT, status_query=(1, STATUS_OUTPUT))
    records = AptBackend(runner).search(["zvbi"])

    by_name = {r.name: r for r in records}
    assert len(records) == 3
    assert by_name["zvbi"].status == PackageStatus.INSTALLED
    assert by_name["libzvbi0"].status == PackageStatus.CONFIG_FILES
    assert by_name["libzvbi0"].version == "0.2.35-18"
    # not found by dpkg-query: search fields survive
    assert by_name["zutty"].status == PackageStatus.UNKNOWN
    assert by_name["zutty"].version == "0.11.2.20220109.192032+dfsg1-1"
    assert by_name["zutty"].category == "jammy"

    args = runner.args_for("status query")
    assert args[:4] == ["dpkg-query", "-W", "--showformat", "${binary:Package} ${Status} ${Version}\\n"]
    assert sorted(args[4:]) == ["libzvbi0", "zutty", "zvbi"]
    assert [op for op, _ in runner.calls] == ["search", "status query"]


def test_search_not_found_scenario(fake_runner):
    search = "pkgY/jammy 1.2-3 amd64\n  something\n"
    runner = fake_runner("apt", search=search, status_query=(1, "dpkg-query: no packages found matching pkgY\n"))
    records = AptBackend(runner).search(["pkgY"])
    assert len(records) == 1
    record = records[0]
    assert (record.name, record.status, record.version, record.category) == (
        "pkgY", PackageStatus.UNKNOWN, "1.2-3", "jammy",
    )


def test_search_without_hits_skips_status_query(fake_runner):
    runner = fake_runner("apt", search="Sorting...\nFull Text Search...\n")
    assert AptBackend(runner).search(["nothing"]) == []
    assert [op for op, _ in runner.calls] == ["search"]


def test_search_aborts_on_status_query_failure(fake_runner):
    runner = fake_runner("apt", search=SEARCH_OUTPUT, status_query=(2, "dpkg-query: error: broken database\n"))
    with pytest.raises(TransportError) as excinfo:
        AptBackend(runner).search(["zvbi"])
    assert excinfo.value.manager == "apt"
    assert excinfo.value.operation == "status query"
    assert excinfo.value.returncode == 2


def test_search_raises_on_unparseable_status_output(fake_runner):
    runner = fake_runner("apt", search=SEARCH_OUTPUT, status_query="garbage\n")
    with pytest.raises(MalformedOutputError) as excinfo:
        AptBackend(runner).search(["zvbi"])
    assert excinfo.value.stage == "apt status query"


def test_install_arguments(fake_runner):
    runner = fake_runner("apt", install=INSTALL_OUTPUT)
    records = AptBackend(runner).install(["openssl"], Options(dry_run=True))
    assert runner.args_for("install") == ["apt", "install", "-f", "openssl", "--dry-run", "-y"]
    assert len(records) == 4


def test_remove_arguments(fake_runner):
    runner = fake_runner("apt", remove=REMOVE_OUTPUT)
    AptBackend(runner).remove(["zvbi"])
    assert runner.args_for("remove") == ["apt", "remove", "-f", "--purge", "--autoremove", "zvbi", "-y"]


def test_interactive_install_returns_nothing(fake_runner):
    runner = fake_runner("apt")
    assert AptBackend(runner).install(["openssl"], Options(interactive=True)) == []
    assert runner.interactive_calls == [("install", ["apt", "install", "-f", "openssl"])]
    assert runner.calls == []


def test_upgrade_arguments(fake_runner):
    runner = fake_runner("apt", upgrade=INSTALL_OUTPUT)
    backend = AptBackend(runner)
    backend.upgrade()
    assert runner.args_for("upgrade") == ["apt", "upgrade", "-y"]
    runner.calls.clear()
    backend.upgrade(["openssl"])
    assert runner.args_for("upgrade") == ["apt", "install", "--only-upgrade", "openssl", "-y"]


def test_list_commands(fake_runner):
    runner = fake_runner(
        "apt",
        list_installed="openssl 3.0.2-0ubuntu1.9\n",
        list_upgradable=UPGRADABLE_OUTPUT,
    )
    backend = AptBackend(runner)
    assert [r.name for r in backend.list_installed()] == ["openssl"]
    assert [r.name for r in backend.list_upgradable()] == ["cloudflared", "libllvm15"]
    assert runner.args_for("list installed") == ["dpkg-query", "-W", "-f", "${binary:Package} ${Version}\\n"]
    assert runner.args_for("list upgradable") == ["apt", "list", "--upgradable"]


def test_info_returns_first_stanza(fake_runner):
    runner = fake_runner("apt", info=SHOW_OUTPUT)
    record = AptBackend(runner).info("curl")
    assert record.version == "7.81.0-1ubuntu1.15"
    assert runner.args_for("info") == ["apt-cache", "show", "curl"]


def test_info_unknown_package(fake_runner):
    runner = fake_runner("apt", info=(100, "N: Unable to locate package nope\nE: No packages found\n"))
    with pytest.raises(PackageNotFoundError):
        AptBackend(runner).info("nope")


def test_refresh_runs_apt_update(fake_runner):
    runner = fake_runner("apt", refresh="Hit:1 http://archive.ubuntu.com/ubuntu jammy InRelease\n")
    AptBackend(runner).refresh()
    assert runner.args_for("refresh") == ["apt", "update"]
