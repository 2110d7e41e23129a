import json

import pytest

from indexing.keywords import KeywordDirectory


class TestContainedKeyword:
    def test_first_occurrence_order(self):
        directory = KeywordDirectory.from_keywords(["submodel", "aas"])

        assert directory.contained_keyword("This is an AAS with many submodels") == ["aas", "submodel"]

    def test_case_insensitive_without_duplicates(self):
        directory = KeywordDirectory.from_keywords(["pump", "Valve"])

        result = directory.contained_keyword("PUMP, valve, pump and another VALVE")

        assert result == ["pump", "valve"]

    def test_no_match(self):
        directory = KeywordDirectory.from_keywords(["pump"])

        assert directory.contained_keyword("nothing to see here") == []

    def test_language_filter(self):
        directory = KeywordDirectory.from_keywords([["pumpe", "de"], ["pump", "en"], ["motor", ""]])

        assert directory.contained_keyword("Pumpe mit Motor", "de") == ["pumpe", "motor"]
        assert directory.contained_keyword("pump with motor", "en") == ["pump", "motor"]


class TestToString:
    def test_drops_whole_trailing_keywords(self):
        keywords = [f"keyword{i}" for i in range(1, 9)]

        result = KeywordDirectory.to_string(keywords, ";", 64)

        assert result == "keyword1;keyword2;keyword3;keyword4;keyword5;keyword6;keyword7"
        assert len(result) <= 64

    def test_exact_length_is_kept(self):
        assert KeywordDirectory.to_string(["abc", "def"], ";", 7) == "abc;def"

    def test_unbounded(self):
        assert KeywordDirectory.to_string(["a", "b", "c"], " ") == "a b c"

    def test_first_keyword_too_long(self):
        assert KeywordDirectory.to_string(["averylongkeyword", "b"], ";", 5) == ""


class TestLoading:
    @pytest.mark.asyncio
    async def test_json_pairs(self, tmp_path):
        path = tmp_path / "keywords.json"
        path.write_text(json.dumps([["Pump", "en"], "valve"]), encoding="utf-8")

        directory = KeywordDirectory(path)
        await directory.wait()
        await directory.wait()

        assert len(directory) == 2
        assert directory.contained_keyword("a valve and a pump") == ["valve", "pump"]

    @pytest.mark.asyncio
    async def test_text_lines(self, tmp_path):
        path = tmp_path / "keywords.txt"
        path.write_text("pump\n\nvalve\n", encoding="utf-8")

        directory = KeywordDirectory(path)
        await directory.wait()

        assert len(directory) == 2

    @pytest.mark.asyncio
    async def test_missing_file_gives_empty_directory(self, tmp_path):
        directory = KeywordDirectory(tmp_path / "missing.json")
        await directory.wait()

        assert len(directory) == 0
        assert directory.contained_keyword("pump") == []

    @pytest.mark.asyncio
    async def test_invalid_json_gives_empty_directory(self, tmp_path):
        path = tmp_path / "keywords.json"
        path.write_text("[not json", encoding="utf-8")

        directory = KeywordDirectory(path)
        await directory.wait()

        assert len(directory) == 0
