import contextlib
import io
import json
import os
import tempfile
import unittest

import idmatch

K = idmatch.NodeKind

SAMPLE_TREE = {
    "type": "Program",
    "body": [
        {
            "type": "FunctionDeclaration",
            "id": {"type": "Identifier", "name": "doThings", "loc": {"start": {"line": 3, "column": 9}}},
            "params": [],
            "body": {"type": "BlockStatement", "body": []},
        }
    ],
}


OBJECT_TREE = {
    "type": "Program",
    "body": [
        {
            "type": "ExpressionStatement",
            "expression": {
                "type": "ObjectExpression",
                "properties": [
                    {
                        "type": "Property",
                        "key": {"type": "Identifier", "name": "MyKey"},
                        "value": {"type": "Literal", "value": 1},
                        "kind": "init",
                    }
                ],
            },
        }
    ],
}


class ReporterTests(unittest.TestCase):
    def test_message_and_location(self) -> None:
        config = idmatch.activate("^[a-z]+$")
        occ = idmatch.IdentifierOccurrence(
            name="fooBar",
            parent_kind=K.OTHER,
            location=idmatch.SourceLocation("a.js", 4, 2),
        )
        violation = idmatch.report(occ, config)
        self.assertEqual(violation.message, "Identifier 'fooBar' does not match the pattern '^[a-z]+$'.")
        self.assertEqual(violation.location, {"file": "a.js", "line": 4, "column": 2})
        self.assertEqual(violation.rule_id, "id-match")
        self.assertEqual(violation.severity, "error")

    def test_missing_location(self) -> None:
        violation = idmatch.report(idmatch.IdentifierOccurrence("X", K.OTHER), idmatch.activate("^y$"))
        self.assertEqual(violation.location, {"file": None, "line": None, "column": None})

    def test_rule_check_returns_none_for_valid_names(self) -> None:
        rule = idmatch.IdMatchRule(idmatch.activate("^[a-z]+$"))
        self.assertIsNone(rule.check(idmatch.IdentifierOccurrence("foo", K.OTHER)))
        self.assertIsNotNone(rule.check(idmatch.IdentifierOccurrence("Foo", K.OTHER)))

    def test_json_object(self) -> None:
        violation = idmatch.report(idmatch.IdentifierOccurrence("X", K.OTHER), idmatch.activate("^y$"))
        obj = idmatch.violation_to_json_obj(violation)
        self.assertEqual(obj["tool"], "idmatch")
        self.assertEqual(obj["extras"], {"name": "X", "pattern": "^y$"})


class ConfigLoadingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def _write(self, name: str, text: str) -> str:
        path = os.path.join(self.tmp.name, name)
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(text)
        return path

    def test_mapping_form(self) -> None:
        path = self._write(
            "cfg.yaml",
            "pattern: '^[a-z]+$'\noptions:\n  properties: true\nseverity: warning\n",
        )
        config = idmatch.load_config_from_yaml(path)
        self.assertEqual(config.pattern_source, "^[a-z]+$")
        self.assertTrue(config.check_properties)
        self.assertFalse(config.only_declarations)
        self.assertEqual(config.severity, "warning")

    def test_ordered_form_under_rule_id(self) -> None:
        path = self._write("cfg.yaml", "id-match:\n  - '^[A-Z]+$'\n  - onlyDeclarations: true\n")
        config = idmatch.load_config_from_yaml(path)
        self.assertEqual(config.pattern_source, "^[A-Z]+$")
        self.assertTrue(config.only_declarations)

    def test_empty_file_gives_defaults(self) -> None:
        config = idmatch.load_config_from_yaml(self._write("cfg.yaml", ""))
        self.assertEqual(config.pattern_source, idmatch.DEFAULT_PATTERN)

    def test_missing_file_gives_defaults(self) -> None:
        with contextlib.redirect_stderr(io.StringIO()) as err:
            config = idmatch.load_config_from_yaml(os.path.join(self.tmp.name, "nope.yaml"))
        self.assertEqual(config.pattern_source, idmatch.DEFAULT_PATTERN)
        self.assertIn("[idmatch]", err.getvalue())

    def test_blank_severity_falls_back_to_error(self) -> None:
        path = self._write("cfg.yaml", "pattern: '^x$'\nseverity:\n")
        self.assertEqual(idmatch.load_config_from_yaml(path).severity, "error")

    def test_bad_pattern_raises(self) -> None:
        path = self._write("cfg.yaml", "pattern: '(['\n")
        with self.assertRaises(idmatch.ConfigurationError):
            idmatch.load_config_from_yaml(path)

    def test_overrides(self) -> None:
        base = idmatch.activate("^a$", {"properties": True}, severity="warning")
        config = idmatch.apply_overrides(base, pattern="^b$", only_declarations=True)
        self.assertEqual(config.pattern_source, "^b$")
        self.assertTrue(config.check_properties)
        self.assertTrue(config.only_declarations)
        self.assertEqual(config.severity, "warning")


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.tree_path = os.path.join(self.tmp.name, "tree.json")
        with open(self.tree_path, "w", encoding="utf-8") as handle:
            json.dump(SAMPLE_TREE, handle)

    def test_check_writes_json_violations(self) -> None:
        out = os.path.join(self.tmp.name, "out.json")
        code = idmatch.main(["check", "--pattern", "^[a-z]+$", "--out", out, self.tree_path])
        self.assertEqual(code, 0)
        with open(out, encoding="utf-8") as handle:
            data = json.load(handle)
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]["location"], {"file": self.tree_path, "line": 3, "column": 9})

    def test_fail_on_violation(self) -> None:
        with contextlib.redirect_stdout(io.StringIO()):
            code = idmatch.main(["check", "--pattern", "^[a-z]+$", "--fail-on-violation", self.tree_path])
        self.assertEqual(code, 1)

    def test_clean_run_prints_empty_list(self) -> None:
        with contextlib.redirect_stdout(io.StringIO()) as out:
            code = idmatch.main(["check", "--fail-on-violation", self.tree_path])
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out.getvalue()), [])

    def test_command_line_can_turn_off_config_options(self) -> None:
        tree_path = os.path.join(self.tmp.name, "object.json")
        with open(tree_path, "w", encoding="utf-8") as handle:
            json.dump(OBJECT_TREE, handle)
        config_path = os.path.join(self.tmp.name, "cfg.yaml")
        with open(config_path, "w", encoding="utf-8") as handle:
            handle.write("pattern: '^[a-z]+$'\noptions:\n  properties: true\n")

        with contextlib.redirect_stdout(io.StringIO()) as out:
            idmatch.main(["check", "--config", config_path, tree_path])
        self.assertEqual(len(json.loads(out.getvalue())), 1)

        with contextlib.redirect_stdout(io.StringIO()) as out:
            idmatch.main(["check", "--config", config_path, "--no-properties", tree_path])
        self.assertEqual(json.loads(out.getvalue()), [])

    def test_invalid_pattern_exit_code(self) -> None:
        with contextlib.redirect_stderr(io.StringIO()) as err:
            code = idmatch.main(["check", "--pattern", "([", self.tree_path])
        self.assertEqual(code, 2)
        self.assertIn("Configuration error", err.getvalue())

    def test_missing_input_is_skipped(self) -> None:
        with contextlib.redirect_stdout(io.StringIO()) as out, contextlib.redirect_stderr(io.StringIO()) as err:
            code = idmatch.main(["check", os.path.join(self.tmp.name, "missing.json")])
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out.getvalue()), [])
        self.assertIn("Input file not found", err.getvalue())


if __name__ == "__main__":
    unittest.main()
