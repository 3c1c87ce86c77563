import unittest

from promptkit.core.example import Example, Prediction
from promptkit.core.parameter import Parameter, ParameterType


class ExampleTests(unittest.TestCase):
    def test_attribute_and_item_access(self) -> None:
        example = Example({"question": "2+2?", "answer": "4"})
        self.assertEqual(example.question, "2+2?")
        self.assertEqual(example["answer"], "4")
        self.assertIn("answer", example)
        self.assertEqual(len(example), 2)
        self.assertEqual(example.keys(), ["question", "answer"])
        self.assertIsNone(example.get("missing"))
        with self.assertRaises(AttributeError):
            _ = example.missing

    def test_put_and_delete_return_new_examples(self) -> None:
        example = Example({"question": "q"}, metadata={"source": "train"})
        updated = example.put("answer", "a")
        removed = updated.delete("question")
        self.assertEqual(example.to_dict(), {"question": "q"})
        self.assertEqual(updated.to_dict(), {"question": "q", "answer": "a"})
        self.assertEqual(removed.to_dict(), {"answer": "a"})
        self.assertEqual(removed.metadata, {"source": "train"})

    def test_merge_second_wins_for_attrs_and_metadata(self) -> None:
        left = Example({"a": 1, "b": 2}, metadata={"m": "left", "x": 1})
        right = Example({"b": 3, "c": 4}, metadata={"m": "right"})
        merged = left.merge(right)
        self.assertEqual(merged.to_dict(), {"a": 1, "b": 3, "c": 4})
        self.assertEqual(merged.metadata, {"m": "right", "x": 1})
        self.assertEqual(left.merge({"a": 9}).to_dict(), {"a": 9, "b": 2})

    def test_subset_and_metadata(self) -> None:
        example = Example({"a": 1, "b": 2, "c": 3})
        self.assertEqual(example.subset(["a", "c", "z"]).to_dict(), {"a": 1, "c": 3})
        tagged = example.with_metadata(difficulty=2)
        self.assertEqual(tagged.metadata, {"difficulty": 2})
        self.assertEqual(example.metadata, {})

    def test_input_dicts_are_copied(self) -> None:
        attrs = {"a": 1}
        example = Example(attrs)
        attrs["a"] = 2
        self.assertEqual(example.a, 1)

    def test_content_key_ignores_order_and_metadata(self) -> None:
        first = Example({"a": 1, "b": [1, 2]}, metadata={"score": 1})
        second = Example({"b": [1, 2], "a": 1})
        self.assertEqual(first.content_key(), second.content_key())
        self.assertNotEqual(first.content_key(), Example({"a": 2, "b": [1, 2]}).content_key())

    def test_prediction_from_outputs(self) -> None:
        prediction = Prediction.from_outputs({"answer": "4"})
        self.assertIsInstance(prediction, Example)
        self.assertEqual(prediction.answer, "4")
        self.assertIsInstance(prediction.put("extra", 1), Prediction)


class ParameterTests(unittest.TestCase):
    def test_history_starts_with_initial_value(self) -> None:
        param = Parameter("instructions", ParameterType.PROMPT, "v0")
        self.assertEqual(param.history, ("v0",))

    def test_update_appends_and_revert_steps_back(self) -> None:
        param = Parameter("instructions", ParameterType.PROMPT, "v0")
        updated = param.update("v1").update("v2")
        self.assertEqual(updated.value, "v2")
        self.assertEqual(updated.history, ("v0", "v1", "v2"))
        reverted = updated.revert()
        self.assertEqual(reverted.value, "v1")
        self.assertEqual(reverted.history, ("v0", "v1"))
        self.assertEqual(param.value, "v0")

    def test_revert_on_single_entry_is_noop(self) -> None:
        param = Parameter("examples", ParameterType.EXAMPLES, [])
        self.assertIs(param.revert(), param)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
