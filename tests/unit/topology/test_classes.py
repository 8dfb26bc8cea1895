"""Tests for the conceptual class enumerations."""
import pytest

from omtg.topology.classes import (
    OMTGClass,
    Relationship,
    StatementKind,
    ALL_STATEMENTS,
    is_omtg_domain,
    rule_kind,
)


class TestOMTGClass:
    """Tests for OMTGClass."""

    def test_closed_set(self):
        assert set(OMTGClass.choices()) == {
            "polygon",
            "line",
            "point",
            "node",
            "isoline",
            "planarsubdivision",
            "tin",
            "tesselation",
            "sample",
            "uniline",
            "biline",
        }

    def test_domain_tags(self):
        assert OMTGClass.ISOLINE.domain == "ast_isoline"
        assert "ast_planarsubdivision" in OMTGClass.domains()

    @pytest.mark.parametrize(
        "domain, expected",
        [
            ("ast_isoline", OMTGClass.ISOLINE),
            ("AST_TIN", OMTGClass.TIN),
            (" ast_sample ", OMTGClass.SAMPLE),
            ("ast_freeway", None),
            ("isoline", None),
            ("", None),
            (None, None),
        ],
    )
    def test_from_domain(self, domain, expected):
        assert OMTGClass.from_domain(domain) is expected

    def test_is_omtg_domain(self):
        assert is_omtg_domain("ast_node")
        assert not is_omtg_domain("geometry")

    def test_display_name(self):
        assert OMTGClass.PLANAR_SUBDIVISION.display_name == "Planar Subdivision"
        assert OMTGClass.ISOLINE.display_name == "Isoline"


class TestRuleKind:
    """Tests for rule_kind resolution."""

    def test_resolves_class(self):
        assert rule_kind("isoline") is OMTGClass.ISOLINE

    def test_resolves_relationship(self):
        assert rule_kind("arcnodenetwork") is Relationship.ARC_NODE_NETWORK

    def test_rejects_unknown(self):
        with pytest.raises(ValueError):
            rule_kind("adjacency")


def test_all_statements():
    assert ALL_STATEMENTS == {StatementKind.INSERT, StatementKind.UPDATE, StatementKind.DELETE}
