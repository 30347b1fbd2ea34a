"""Tests for template rendering and visitor-based parsing."""

import json

from ember.prompt.template import Prompt, format_value, render_template, template_variables


def test_render_list_and_text():
    rendered = render_template("Hello {{name}}, items: {{items}}", {"name": "Bo", "items": ["a", "b"]})
    assert rendered == "Hello Bo, items: a\nb"


def test_missing_and_none_render_empty():
    assert render_template("[{{missing}}][{{none}}]", {"none": None}) == "[][]"


def test_non_text_values_are_json():
    rendered = render_template("{{params}}", {"params": {"city": "Lisbon", "days": 2}})
    assert json.loads(rendered) == {"city": "Lisbon", "days": 2}


def test_nested_sequences_are_flattened():
    assert format_value(["a", ["b", "c"], 1]) == "a\nb\nc\n1"


def test_template_variables_in_order():
    assert template_variables("{{b}} {{a}} {{b}}") == ["b", "a"]


def test_single_braces_untouched():
    assert render_template('{"x": 1} {{y}}', {"y": "z"}) == '{"x": 1} z'


def test_prompt_uses_base_formatter():
    prompt = Prompt("{{names}}", lambda variables, data: {"names": [n.upper() for n in variables["names"]]})

    assert prompt.render({"names": ["ann", "bo"]}) == "ANN\nBO"
    assert prompt.variables == ["names"]


def test_call_site_formatter_overrides_base():
    prompt = Prompt("{{x}}", lambda variables, data: {"x": "base"})

    rendered = prompt.render({"x": "raw"}, data="d", formatter=lambda v, d: {"x": f"{v['x']}-{d}"})

    assert rendered == "raw-d"


def test_prompt_without_formatter_renders_raw():
    assert Prompt("{{x}}").render({"x": "raw"}) == "raw"


def test_parse_applies_visitors():
    prompt = Prompt("")
    output = prompt.parse(
        'noise <thinking msgId="1">ponder</thinking> <unknown>x</unknown> <response>hi</response>',
        {
            "thinking": lambda out, node, parse: out.append(("thinking", node.content)),
            "response": lambda out, node, parse: out.append(("response", node.content)),
        },
        [],
    )

    assert output == [("thinking", "ponder"), ("response", "hi")]


def test_malformed_action_is_skipped():
    prompt = Prompt("")

    def visit_action(out, node, parse):
        out.append({"name": node.attributes["name"], "params": json.loads(node.content)})

    output = prompt.parse(
        '<action name="ok">{"q": 1}</action><action name="bad">{not json</action>',
        {"action": visit_action},
        [],
    )

    assert output == [{"name": "ok", "params": {"q": 1}}]
