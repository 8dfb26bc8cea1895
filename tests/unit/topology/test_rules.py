"""Tests for the class -> validator rule table."""
from omtg.topology.classes import OMTGClass, Relationship, StatementKind
from omtg.topology.rules import RULES, get_rule, supported_classes
from omtg.topology.validators import (
    ArcNodeNetworkValidator,
    ContainmentValidator,
    IsolineValidator,
    TINValidator,
)


class TestRuleTable:
    def test_set_wide_classes(self):
        assert get_rule(OMTGClass.ISOLINE).validator_class is IsolineValidator
        assert get_rule(OMTGClass.TIN).validator_class is TINValidator
        assert set(supported_classes()) == {
            OMTGClass.ISOLINE,
            OMTGClass.PLANAR_SUBDIVISION,
            OMTGClass.TIN,
            OMTGClass.SAMPLE,
        }

    def test_placeholder_classes_have_no_rule(self):
        for omtg_class in (OMTGClass.TESSELATION, OMTGClass.BILINE, OMTGClass.POLYGON):
            assert get_rule(omtg_class) is None

    def test_set_wide_rules_fire_on_every_statement(self):
        rule = get_rule(OMTGClass.SAMPLE)
        assert rule.fires_on == set(StatementKind)
        assert not rule.cross_table

    def test_containment_firing(self):
        rule = RULES[Relationship.CONTAINMENT]
        assert rule.validator_class is ContainmentValidator
        assert rule.cross_table
        assert StatementKind.DELETE not in rule.fires_on
        assert StatementKind.INSERT not in rule.secondary_fires_on
        assert StatementKind.DELETE in rule.secondary_fires_on

    def test_arc_node_firing(self):
        rule = RULES[Relationship.ARC_NODE_NETWORK]
        assert rule.validator_class is ArcNodeNetworkValidator
        assert rule.fires_on == set(StatementKind)
        assert StatementKind.INSERT not in rule.secondary_fires_on
        assert rule.name == "arcnodenetwork"

    def test_only_arc_node_defers_to_commit(self):
        assert RULES[Relationship.ARC_NODE_NETWORK].deferred
        deferred = [kind for kind, rule in RULES.items() if rule.deferred]
        assert deferred == [Relationship.ARC_NODE_NETWORK]
