"""Tests for chapter memory extraction."""

from tiandao.memory.extract import extract_memory_from_chapter


class TestSpeakers:
    def test_dialogue_speakers(self):
        text = '"你好！"张三说道。\n"你也好！"李四回答。'
        memory = extract_memory_from_chapter(1, text)
        assert memory.characters == ["张三", "李四"]

    def test_curly_quotes(self):
        text = "“走吧。”王五笑道：“天色不早了。”"
        assert extract_memory_from_chapter(1, text).characters == ["王五"]

    def test_particle_suffix_rejected(self):
        text = "他笑着说：“好。”"
        assert extract_memory_from_chapter(1, text).characters == []

    def test_deduplicated_in_order(self):
        text = "张三说：“一。”\n李四问道：“二？”\n张三答道：“三。”"
        assert extract_memory_from_chapter(1, text).characters == ["张三", "李四"]


class TestLocations:
    def test_movement_to_place(self):
        text = "张三来到天元城，又去青云山。\n他进入藏经阁，再回天元城。\n他到天元城外。"
        memory = extract_memory_from_chapter(1, text)
        assert memory.locations == ["天元城", "青云山", "藏经阁"]

    def test_no_places(self):
        assert extract_memory_from_chapter(1, "风很大。").locations == []


class TestEventsAndSummary:
    def test_key_events(self):
        text = "清晨。\n张三开始修炼。\n午后无事。\n张三突破了瓶颈！"
        memory = extract_memory_from_chapter(1, text)
        assert memory.key_events == ["张三开始修炼。", "张三突破了瓶颈！"]

    def test_long_lines_are_not_events(self):
        text = "战斗" + "很激烈" * 40
        assert extract_memory_from_chapter(1, text).key_events == []

    def test_at_most_five_events(self):
        text = "\n".join(f"第{i}场战斗" for i in range(8))
        assert len(extract_memory_from_chapter(1, text).key_events) == 5

    def test_summary_first_three_lines(self):
        text = "  第一句。\n\n第二句。\n第三句。\n第四句。"
        assert extract_memory_from_chapter(1, text).summary == "第一句。第二句。第三句。"

    def test_summary_truncated(self):
        text = "长" * 500
        assert len(extract_memory_from_chapter(1, text).summary) == 200

    def test_empty_text(self):
        memory = extract_memory_from_chapter(3, "")
        assert memory.chapter_number == 3
        assert memory.summary == ""
        assert memory.key_events == [] and memory.characters == [] and memory.locations == []

    def test_timestamp_from_clock(self, clock):
        assert extract_memory_from_chapter(1, "x", clock=clock).timestamp == clock.now
