"""Tests for test list parsing and test case discovery."""

from __future__ import annotations

from testhub.models.config import HubConfig
from testhub.operations.test_cases import TestCaseMapper, parse_test_list
from tests.conftest import STAR_CASES
from tests.fakes import make_sha


class TestParseTestList:
    def test_declarations_in_order(self):
        text = "do_one 1M_pre_ms_to_wd auto\ndo_one wd_cool auto\n"
        assert parse_test_list(text) == ["1M_pre_ms_to_wd", "wd_cool"]

    def test_stops_at_return(self):
        text = "\n".join(
            [
                "      do_one first auto",
                "      return",
                "      do_one after_return auto",
            ]
        )
        assert parse_test_list(text) == ["first"]

    def test_ignores_other_lines(self):
        text = "\n".join(
            [
                "      subroutine do_one_test",
                "      ! do_one commented_out",
                "      do_one real_case skip",
                "      call something()",
                "      return_value = 1",
                "      do_one second",
            ]
        )
        assert parse_test_list(text) == ["real_case", "second"]

    def test_tab_indentation(self):
        assert parse_test_list("\tdo_one tabbed\n\treturn\n") == ["tabbed"]

    def test_empty(self):
        assert parse_test_list("") == []


class TestTestCaseMapper:
    def test_discover_reads_each_module(self, remote, case_repo, config):
        remote.set_test_list("binary", ["evolve_both_stars"])
        mapper = TestCaseMapper(remote, case_repo, config)

        found = mapper.discover(make_sha("c0"))

        assert found == {"star": STAR_CASES, "binary": ["evolve_both_stars"]}
        refs = {c[2] for c in remote.calls if c[0] == "get_file_content"}
        assert refs == {make_sha("c0")}

    def test_missing_module_skipped(self, remote, case_repo, config):
        mapper = TestCaseMapper(remote, case_repo, config)
        assert mapper.discover(make_sha("c0")) == {"star": STAR_CASES}

    def test_list_at_revision_wins(self, remote, case_repo, config):
        sha = make_sha("old")
        remote.set_test_list("star", ["legacy_case"], ref=sha)
        mapper = TestCaseMapper(remote, case_repo, config)
        assert mapper.discover(sha)["star"] == ["legacy_case"]
        assert mapper.discover(make_sha("new"))["star"] == STAR_CASES

    def test_known_modules_include_catalog(self, remote, case_repo):
        case_repo.ensure_many([("astero", "gyre_in_mesa_rsg")])
        mapper = TestCaseMapper(remote, case_repo, HubConfig(modules=["star"]))
        assert mapper.known_modules() == ["star", "astero"]

    def test_ensure_test_cases_is_idempotent(self, remote, case_repo, config):
        mapper = TestCaseMapper(remote, case_repo, config)
        found = mapper.discover(make_sha("c0"))
        first = mapper.ensure_test_cases(found)
        second = mapper.ensure_test_cases(found)
        assert first == second
        assert set(first) == {("star", name) for name in STAR_CASES}

    def test_custom_list_path(self, remote, case_repo):
        remote.files[("suites/star.txt", None)] = "do_one custom\n"
        config = HubConfig(modules=["star"], test_list_path="suites/{module}.txt")
        mapper = TestCaseMapper(remote, case_repo, config)
        assert mapper.discover(make_sha("x")) == {"star": ["custom"]}
