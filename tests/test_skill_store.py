import sqlite3
import tempfile
import unittest
from pathlib import Path

from skill_store import LinkType, ProcessingState, SkillGraphAdapter, SkillGraphStore, batch_process_ids


class SkillGraphStoreTests(unittest.TestCase):
    def test_creates_parent_directory_and_schema(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "nested" / "graph.sqlite"
            store = SkillGraphStore(db_path)

            store.execute_many(
                "INSERT INTO skill(id, name) VALUES (?, ?)",
                [("skill_relational", "Relational Model")],
            )
            rows = store.query("SELECT id, name FROM skill")

            self.assertTrue(db_path.exists())
            self.assertEqual(rows, [("skill_relational", "Relational Model")])

    def test_transaction_rolls_back_on_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SkillGraphStore(Path(tmpdir) / "graph.sqlite")

            with self.assertRaises(sqlite3.IntegrityError):
                with store.transaction() as con:
                    con.execute("INSERT INTO skill(id, name) VALUES ('a', 'A')")
                    con.execute("INSERT INTO skill(id, name) VALUES ('a', 'again')")

            self.assertEqual(store.query("SELECT COUNT(*) FROM skill"), [(0,)])


class SkillGraphAdapterTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.adapter = SkillGraphAdapter(Path(self._tmp.name) / "graph.sqlite")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_documents_and_chunks(self) -> None:
        first = self.adapter.add_document("b" * 30, file_name="b.md", chunk_size=20, overlap=5, document_id="doc_b")
        self.adapter.add_document("a" * 10, file_name="a.md", document_id="doc_a", metadata={"lang": "en"})

        chunks, documents = self.adapter.get_all_chunks(["doc_b", "doc_a", "doc_missing"])

        self.assertEqual(first["chunk_count"], 2)
        self.assertEqual(set(documents), {"doc_a", "doc_b"})
        self.assertEqual([(c.document_id, c.start_position) for c in chunks], [("doc_a", 0), ("doc_b", 0), ("doc_b", 15)])
        self.assertEqual(chunks[0].metadata, {"lang": "en"})
        self.assertIsNone(self.adapter.get_document("doc_missing"))

    def test_skill_lifecycle(self) -> None:
        skill = self.adapter.create_skill(name="  Databases ", metadata={"level": "beginner"})

        self.assertEqual(skill["name"], "Databases")
        self.assertEqual(skill["metadata"], {"level": "beginner"})
        self.assertTrue(self.adapter.set_processing_state(skill["id"], ProcessingState.CREATING_DAG))
        self.assertEqual(self.adapter.get_skill(skill["id"])["processing_state"], "CREATING_DAG")
        self.assertFalse(self.adapter.set_processing_state("skill_missing", ProcessingState.SUCCESS))
        with self.assertRaises(ValueError):
            self.adapter.create_skill(name=" ")

    def test_batched_skill_fetch(self) -> None:
        ids = self.adapter.insert_skills([{"name": f"Skill {i}", "root_skill_id": "root"} for i in range(7)])

        fetched = self.adapter.fetch_skills_by_ids(ids + ids[:2], batch_size=3)

        self.assertEqual(sorted(s["id"] for s in fetched), sorted(ids))
        self.assertEqual(len(self.adapter.list_skills(root_skill_id="root")), 7)

    def test_references_deduplicate_on_sentence_and_chunk(self) -> None:
        first = self.adapter.insert_references(
            [("Indexes help.", True, "c1", "d1"), ("Indexes help.", True, "c1", "d1"), ("Indexes help.", False, None, None)]
        )
        second = self.adapter.insert_references([("Indexes help.", True, "c1", "d1")])

        self.assertEqual(len(first), 2)
        self.assertEqual(second[("Indexes help.", "c1")], first[("Indexes help.", "c1")])
        stored = self.adapter.fetch_references(list(first.values()))
        self.assertEqual(sorted(r["is_exact"] for r in stored), [False, True])

    def test_links_ignore_duplicates(self) -> None:
        inserted = self.adapter.insert_links(
            [("a", "b", LinkType.LESSON_LINK), ("a", "b", "lesson_link"), ("o", "b", LinkType.LESSON_OBJECTIVE)]
        )
        again = self.adapter.insert_links([("a", "b", LinkType.LESSON_LINK), ("", "b", LinkType.LESSON_LINK)])

        self.assertEqual(inserted, 2)
        self.assertEqual(again, 0)
        self.assertEqual(len(self.adapter.list_links(downstream_ids=["b"], link_type=LinkType.LESSON_LINK)), 1)
        self.assertEqual(len(self.adapter.list_links()), 2)

    def test_modules_and_activities(self) -> None:
        module_id = self.adapter.create_module(name="Basics", position=1, root_skill_id="root", module_type="module")
        sub_id = self.adapter.create_module(
            name="Storage", position=1, root_skill_id="root", module_type="submodule", children_ids=["l1"]
        )
        self.adapter.update_module_children(module_id, [sub_id])
        modules = {m["id"]: m for m in self.adapter.list_modules("root")}

        self.assertEqual(modules[module_id]["children_ids"], [sub_id])
        self.assertEqual(modules[sub_id]["children_ids"], ["l1"])

        activity_id = self.adapter.create_activity(activity_type="flashcard", type_config={"front": "f", "back": "b"})
        self.adapter.record_activity_result(activity_id=activity_id, result_type="graded", score=0.5, xp=10)
        self.assertEqual(self.adapter.get_activity(activity_id)["type_config"], {"front": "f", "back": "b"})
        self.assertEqual(self.adapter.list_activity_results(activity_id)[0]["xp"], 10)


def test_batch_process_ids_slices_in_order() -> None:
    seen = []

    def query(batch):
        seen.append(batch)
        return [value.upper() for value in batch]

    assert batch_process_ids(["a", "b", "c"], query, batch_size=2) == ["A", "B", "C"]
    assert seen == [["a", "b"], ["c"]]


if __name__ == "__main__":
    unittest.main()
