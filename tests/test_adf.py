import unittest


def _doc(*content):
    return {"type": "doc", "version": 1, "content": list(content)}


def _p(*inline):
    return {"type": "paragraph", "content": list(inline)}


def _t(text, *marks):
    node = {"type": "text", "text": text}
    if marks:
        node["marks"] = list(marks)
    return node


class AdfToMarkdownTests(unittest.TestCase):
    def test_empty_inputs(self):
        from discovery_bridge.services.adf import adf_to_markdown

        self.assertEqual(adf_to_markdown(None), "")
        self.assertEqual(adf_to_markdown({}), "")
        self.assertEqual(adf_to_markdown("already text"), "already text")

    def test_paragraphs_and_marks(self):
        from discovery_bridge.services.adf import adf_to_markdown

        doc = _doc(
            _p(
                _t("Hello "),
                _t("bold", {"type": "strong"}),
                _t(" and "),
                _t("site", {"type": "link", "attrs": {"href": "https://example.com"}}),
            ),
            _p(_t("x()", {"type": "code"}), {"type": "hardBreak"}, _t("gone", {"type": "strike"})),
        )

        self.assertEqual(
            adf_to_markdown(doc),
            "Hello **bold** and [site](https://example.com)\n\n`x()`\n~~gone~~",
        )

    def test_headings_are_clamped(self):
        from discovery_bridge.services.adf import adf_to_markdown

        doc = _doc(
            {"type": "heading", "attrs": {"level": 9}, "content": [_t("Deep")]},
            {"type": "heading", "attrs": {"level": "x"}, "content": [_t("Bad")]},
        )
        self.assertEqual(adf_to_markdown(doc), "###### Deep\n\n# Bad")

    def test_nested_and_ordered_lists(self):
        from discovery_bridge.services.adf import adf_to_markdown

        doc = _doc(
            {
                "type": "bulletList",
                "content": [
                    {
                        "type": "listItem",
                        "content": [
                            _p(_t("one")),
                            {
                                "type": "orderedList",
                                "attrs": {"order": 3},
                                "content": [
                                    {"type": "listItem", "content": [_p(_t("three"))]},
                                    {"type": "listItem", "content": [_p(_t("four"))]},
                                ],
                            },
                        ],
                    },
                    {"type": "listItem", "content": [_p(_t("two"))]},
                ],
            }
        )

        self.assertEqual(adf_to_markdown(doc), "- one\n  3. three\n  4. four\n- two")

    def test_code_quote_rule_and_media(self):
        from discovery_bridge.services.adf import adf_to_markdown

        doc = _doc(
            {"type": "codeBlock", "attrs": {"language": "python"}, "content": [_t("print(1)")]},
            {"type": "blockquote", "content": [_p(_t("quoted"))]},
            {"type": "rule"},
            {"type": "mediaSingle", "content": [{"type": "media", "attrs": {"id": "x"}}]},
        )

        self.assertEqual(adf_to_markdown(doc), "```python\nprint(1)\n```\n\n> quoted\n\n---")

    def test_inline_specials(self):
        from discovery_bridge.services.adf import adf_to_markdown

        doc = _doc(
            _p(
                {"type": "mention", "attrs": {"text": "@dana"}},
                _t(" "),
                {"type": "emoji", "attrs": {"shortName": ":smile:", "text": "😄"}},
                _t(" "),
                {"type": "status", "attrs": {"text": "IN PROGRESS"}},
                _t(" "),
                {"type": "inlineCard", "attrs": {"url": "https://example.com/x"}},
            )
        )
        self.assertEqual(adf_to_markdown(doc), "@dana 😄 [IN PROGRESS] https://example.com/x")

    def test_unknown_node_keeps_text(self):
        from discovery_bridge.services.adf import adf_to_markdown

        doc = _doc({"type": "panel", "attrs": {"panelType": "info"}, "content": [_p(_t("inside"))]})

        with self.assertLogs("discovery_bridge.services.adf", level="WARNING"):
            self.assertEqual(adf_to_markdown(doc), "inside")


class MarkdownToAdfTests(unittest.TestCase):
    def test_blocks(self):
        from discovery_bridge.services.adf import markdown_to_adf

        doc = markdown_to_adf("# Title\n\nline one\nline two\n\n- a\n- b\n\n1. x\n\n```sh\nls\n```")

        types = [node["type"] for node in doc["content"]]
        self.assertEqual(types, ["heading", "paragraph", "bulletList", "orderedList", "codeBlock"])
        self.assertEqual(doc["content"][0]["attrs"], {"level": 1})
        self.assertEqual(
            doc["content"][1]["content"],
            [_t("line one"), {"type": "hardBreak"}, _t("line two")],
        )
        self.assertEqual(len(doc["content"][2]["content"]), 2)
        self.assertEqual(doc["content"][4], {"type": "codeBlock", "attrs": {"language": "sh"}, "content": [_t("ls")]})

    def test_inline_marks(self):
        from discovery_bridge.services.adf import markdown_to_adf

        doc = markdown_to_adf("**[Dana](https://x/p)** said **hi** with `code` and [link](https://y)")
        nodes = doc["content"][0]["content"]

        self.assertEqual(
            nodes[0],
            _t("Dana", {"type": "strong"}, {"type": "link", "attrs": {"href": "https://x/p"}}),
        )
        self.assertEqual(nodes[1], _t(" said "))
        self.assertEqual(nodes[2], _t("hi", {"type": "strong"}))
        self.assertEqual(nodes[4], _t("code", {"type": "code"}))
        self.assertEqual(nodes[6], _t("link", {"type": "link", "attrs": {"href": "https://y"}}))

    def test_html_comment_survives_round_trip(self):
        from discovery_bridge.services.adf import adf_to_markdown, markdown_to_adf

        text = 'Body\n\n<!-- comment-sync:{"origin_system":"gitlab","origin_comment_id":"1"} -->'
        self.assertEqual(adf_to_markdown(markdown_to_adf(text)), text)

    def test_empty(self):
        from discovery_bridge.services.adf import markdown_to_adf

        self.assertEqual(markdown_to_adf(None), {"type": "doc", "version": 1, "content": []})


if __name__ == "__main__":
    unittest.main()
