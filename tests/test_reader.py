"""Tests for CSV reading helpers."""
import pytest
from entry_import.errors import ParseError
from entry_import.ingestion import TableBuilder, open_csv, unique_headers
from entry_import.models import SourceRow


def read_all(path, **kwargs):
    with open_csv(path, **kwargs) as (headers, rows):
        return headers, list(rows)


class TestUniqueHeaders:
    def test_no_duplicates(self):
        assert unique_headers(["id", "name"]) == ["id", "name"]

    def test_suffixes_later_occurrences(self):
        assert unique_headers(["id", "name", "name", "name"]) == ["id", "name", "name_1", "name_2"]

    def test_avoids_existing_names(self):
        headers = unique_headers(["a", "a", "a_1"])
        assert headers[0] == "a"
        assert len(set(headers)) == 3


class TestOpenCsv:
    def test_reads_rows(self, tmp_path):
        path = tmp_path / "data.csv"
        path.write_text("id,name\na1,Item 1\na2,Item 2\n", encoding="utf-8")

        headers, rows = read_all(path)

        assert headers == ["id", "name"]
        assert rows == [
            SourceRow((("id", "a1"), ("name", "Item 1"))),
            SourceRow((("id", "a2"), ("name", "Item 2"))),
        ]

    def test_quoted_fields(self, tmp_path):
        path = tmp_path / "data.csv"
        path.write_text('id,name\na1,"Smith, John"\na2,"multi\nline"\n', encoding="utf-8")

        _, rows = read_all(path)

        assert rows[0].get("name") == "Smith, John"
        assert rows[1].get("name") == "multi\nline"

    def test_bom_is_stripped(self, tmp_path):
        path = tmp_path / "bom.csv"
        path.write_bytes(b"\xef\xbb\xbfid,name\na1,x\n")

        headers, _ = read_all(path)

        assert headers == ["id", "name"]

    def test_blank_lines_skipped(self, tmp_path):
        path = tmp_path / "data.csv"
        path.write_text("\nid\n\na1\n\na2\n\n", encoding="utf-8")

        headers, rows = read_all(path)

        assert headers == ["id"]
        assert [row.get("id") for row in rows] == ["a1", "a2"]

    def test_extra_cells_dropped_short_rows_kept(self, tmp_path):
        path = tmp_path / "data.csv"
        path.write_text("id,name,url\na1,n,u,extra\na2\n", encoding="utf-8")

        _, rows = read_all(path)

        assert rows[0].keys() == ["id", "name", "url"]
        assert rows[1].keys() == ["id"]
        assert "name" not in rows[1]

    def test_duplicate_headers(self, tmp_path):
        path = tmp_path / "dup.csv"
        path.write_text("id,name,name\na1,first,second\n", encoding="utf-8")

        headers, rows = read_all(path)

        assert headers == ["id", "name", "name_1"]
        assert rows[0].to_dict() == {"id": "a1", "name": "first", "name_1": "second"}

    def test_custom_delimiter(self, tmp_path):
        path = tmp_path / "data.csv"
        path.write_text("id;name\na1;x\n", encoding="utf-8")

        _, rows = read_all(path, delimiter=";")

        assert rows[0].get("name") == "x"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("", encoding="utf-8")

        with pytest.raises(ParseError, match="no header row"):
            read_all(path)

    def test_unterminated_quote(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text('id,name\na1,"never closed\n', encoding="utf-8")

        with pytest.raises(ParseError):
            read_all(path)

    def test_undecodable_bytes(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_bytes(b"id,name\na1,\xff\xfe\xfa\n")

        with pytest.raises(ParseError) as exc_info:
            read_all(path)
        assert exc_info.value.path == str(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ParseError, match="Cannot open"):
            read_all(tmp_path / "missing.csv")

    def test_unknown_encoding(self, tmp_path):
        path = tmp_path / "data.csv"
        path.write_text("id\n", encoding="utf-8")

        with pytest.raises(ParseError):
            read_all(path, encoding="not-a-codec")


class TestTableBuilder:
    def test_preview_cap_and_progress(self):
        builder = TableBuilder(["id"], preview_rows=2, progress_every=2)
        due = [builder.add(SourceRow((("id", str(i)),))) for i in range(5)]

        table = builder.build()

        assert due == [False, True, False, True, False]
        assert len(table.rows) == 2
        assert table.total_rows == 5
        assert len(builder.all_rows) == 5
