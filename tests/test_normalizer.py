from __future__ import annotations

import random
import unittest
from unittest import mock

import normalizer
from errors import NoMediaDataError
from normalizer import (
    PostType,
    QualityKind,
    extract_qualities,
    format_count,
    generate_filename,
    normalize,
    placeholder_avatar,
)


class _RecordingRandom:
    def __init__(self, value: int) -> None:
        self.value = value
        self.calls: list[tuple[int, int]] = []

    def randint(self, a: int, b: int) -> int:
        self.calls.append((a, b))
        return self.value


class TestFormatCount(unittest.TestCase):
    def test_plain_below_thousand(self) -> None:
        self.assertEqual(format_count(950), "950")
        self.assertEqual(format_count(0), "0")

    def test_thousands_and_millions(self) -> None:
        self.assertEqual(format_count(1500), "1.5K")
        self.assertEqual(format_count(1000), "1.0K")
        self.assertEqual(format_count(2500000), "2.5M")
        self.assertEqual(format_count(999999), "1000.0K")

    def test_rounds_half_up(self) -> None:
        self.assertEqual(format_count(1250), "1.3K")
        self.assertEqual(format_count(1049999), "1.0M")

    def test_strings_pass_through(self) -> None:
        self.assertEqual(format_count("N/A"), "N/A")
        self.assertEqual(format_count("12"), "12")

    def test_missing_and_negative_become_zero(self) -> None:
        self.assertEqual(format_count(None), "0")
        self.assertEqual(format_count(-5), "0")
        self.assertEqual(format_count(float("nan")), "0")

    def test_integral_floats_render_as_ints(self) -> None:
        self.assertEqual(format_count(42.0), "42")


class TestGenerateFilename(unittest.TestCase):
    def test_strips_punctuation_and_adds_minutes(self) -> None:
        self.assertEqual(generate_filename("Hello, World!! Test", 125), "Hello_World_Test_2m5s")

    def test_seconds_only(self) -> None:
        self.assertEqual(generate_filename("Pics", 0), "Pics_0s")
        self.assertEqual(generate_filename("Cat", 59), "Cat_59s")

    def test_keeps_first_fourteen_words(self) -> None:
        title = " ".join(f"w{i}" for i in range(20))
        expected = "_".join(f"w{i}" for i in range(14)) + "_7s"
        self.assertEqual(generate_filename(title, 7), expected)

    def test_collapses_whitespace(self) -> None:
        self.assertEqual(generate_filename("  a \t b\n c  ", 3), "a_b_c_3s")

    def test_missing_title_uses_default(self) -> None:
        self.assertEqual(generate_filename("", None), "TikTok_Video_0s")

    def test_non_ascii_is_dropped(self) -> None:
        self.assertEqual(generate_filename("café #fyp 🐱", 61), "caf_fyp_1m1s")


class TestExtractQualities(unittest.TestCase):
    def test_hd_before_standard(self) -> None:
        qualities = extract_qualities({"hdplay": "hd", "play": "sd"})
        self.assertEqual([q.kind for q in qualities], [QualityKind.HD, QualityKind.STANDARD])
        self.assertEqual([q.url for q in qualities], ["hd", "sd"])
        self.assertEqual([q.is_hd for q in qualities], [True, False])

    def test_same_url_not_duplicated(self) -> None:
        qualities = extract_qualities({"hdplay": "u1", "play": "u1"})
        self.assertEqual(len(qualities), 1)
        self.assertEqual(qualities[0].kind, QualityKind.HD)

    def test_play_only_becomes_hd(self) -> None:
        qualities = extract_qualities({"play": "sd"})
        self.assertEqual([(q.kind, q.url) for q in qualities], [(QualityKind.HD, "sd")])

    def test_hdplay_only(self) -> None:
        qualities = extract_qualities({"hdplay": "hd"})
        self.assertEqual([q.url for q in qualities], ["hd"])

    def test_no_urls(self) -> None:
        self.assertEqual(extract_qualities({}), [])


class TestNormalize(unittest.TestCase):
    def test_video_post(self) -> None:
        result = normalize({"data": {"title": "Cat", "duration": 65, "play": "u1", "hdplay": "u1"}})

        self.assertEqual(result.post_type, PostType.VIDEO)
        self.assertIsNone(result.photos)
        self.assertEqual(result.filename, "Cat_1m5s")
        self.assertEqual(result.video.duration, 65)
        self.assertTrue(result.video.hd_available)
        self.assertEqual([(q.kind, q.url) for q in result.video.qualities], [(QualityKind.HD, "u1")])

    def test_photo_post(self) -> None:
        result = normalize({"data": {"images": ["a", "b"], "title": "Pics"}})

        self.assertEqual(result.post_type, PostType.PHOTOS)
        self.assertIsNone(result.video)
        self.assertEqual([(i.index, i.url) for i in result.photos.images], [(1, "a"), (2, "b")])
        self.assertEqual(result.photos.cover, "a")
        self.assertIsNone(result.photos.video_download)
        self.assertEqual(result.filename, "Pics_0s")

    def test_photo_post_with_slideshow_video(self) -> None:
        result = normalize({
            "data": {
                "images": ["a"],
                "play": "sd",
                "hdplay": "hd",
                "music_info": {"title": "Song"},
            }
        })
        download = result.photos.video_download
        self.assertEqual((download.hd, download.standard), ("hd", "sd"))
        self.assertTrue(download.has_music)
        self.assertEqual(download.music_title, "Song")

    def test_empty_music_info_still_counts_as_music(self) -> None:
        for music_info, expected in (({}, True), ([], True), (None, False), ("", False)):
            with self.subTest(music_info=music_info):
                result = normalize({"data": {"images": ["a"], "play": "sd", "music_info": music_info}})
                self.assertEqual(result.photos.video_download.has_music, expected)
                self.assertEqual(result.photos.video_download.music_title, "Original Sound")

    def test_photo_post_skips_quality_extraction(self) -> None:
        with mock.patch.object(normalizer, "extract_qualities") as extract:
            result = normalize({"data": {"images": ["a"], "play": "sd", "hdplay": "hd"}})

        extract.assert_not_called()
        self.assertEqual(result.post_type, PostType.PHOTOS)

    def test_non_string_title(self) -> None:
        result = normalize({"data": {"title": 123}})
        self.assertEqual(result.title, "123")
        self.assertEqual(result.filename, "123_0s")

        for title in (None, 0, ["x"], {"a": 1}):
            with self.subTest(title=title):
                result = normalize({"data": {"title": title}})
                self.assertEqual(result.title, "TikTok Video")
                self.assertEqual(result.filename, "TikTok_Video_0s")

    def test_empty_images_is_a_video(self) -> None:
        result = normalize({"data": {"images": [], "play": "u"}})
        self.assertEqual(result.post_type, PostType.VIDEO)

    def test_missing_data_raises(self) -> None:
        for payload in ({}, {"data": None}, {"code": -1, "msg": "Url parsing is failed!"}, [], None):
            with self.subTest(payload=payload):
                with self.assertRaises(NoMediaDataError):
                    normalize(payload)

    def test_defaults(self) -> None:
        result = normalize({"data": {}}, rng=random.Random(0))

        self.assertEqual(result.title, "TikTok Video")
        self.assertEqual(result.created, 0)
        self.assertEqual(result.video.qualities, [])
        self.assertFalse(result.video.hd_available)
        self.assertEqual(result.video.cover, placeholder_avatar())
        self.assertEqual(result.music.title, "Original Sound")
        self.assertEqual(result.music.author, "Unknown Artist")
        self.assertEqual(result.music.url, "")
        self.assertEqual(result.author.id, "unknown")
        self.assertEqual(result.author.name, "Unknown User")
        self.assertEqual(result.author.avatar, placeholder_avatar())
        self.assertFalse(result.author.verified)
        self.assertEqual(result.stats.likes, "0")

    def test_follower_placeholder_is_shared_and_in_range(self) -> None:
        for picked, expected in ((1000, "1.0K"), (1000000, "1.0M")):
            with self.subTest(picked=picked):
                rng = _RecordingRandom(picked)
                result = normalize({"data": {}}, rng=rng)

                self.assertEqual(rng.calls, [(1000, 1000000)])
                self.assertEqual(result.author.followers, expected)
                self.assertEqual(result.stats.followers, expected)

    def test_real_follower_count_skips_placeholder(self) -> None:
        rng = _RecordingRandom(1000)
        result = normalize({"data": {"author": {"follower_count": 12}}}, rng=rng)

        self.assertEqual(rng.calls, [])
        self.assertEqual(result.author.followers, "12")

    def test_real_counts_are_formatted(self) -> None:
        result = normalize({
            "data": {
                "digg_count": 1500,
                "comment_count": 12,
                "share_count": 2500000,
                "play_count": "1.2M",
                "author": {"follower_count": 3400, "verified": 1, "unique_id": "cat", "nickname": "Cat"},
            }
        })
        self.assertEqual(result.stats.likes, "1.5K")
        self.assertEqual(result.stats.comments, "12")
        self.assertEqual(result.stats.shares, "2.5M")
        self.assertEqual(result.stats.views, "1.2M")
        self.assertEqual(result.author.followers, "3.4K")
        self.assertTrue(result.author.verified)
        self.assertEqual((result.author.id, result.author.name), ("cat", "Cat"))

    def test_verified_needs_true_or_one(self) -> None:
        for value, expected in (
            (True, True), (1, True), (1.0, True), ("true", False), ("1", False), (2, False), (None, False),
        ):
            with self.subTest(value=value):
                result = normalize({"data": {"author": {"verified": value, "follower_count": 1}}})
                self.assertEqual(result.author.verified, expected)

    def test_to_dict_shape(self) -> None:
        body = normalize({
            "data": {"title": "Cat", "duration": 65, "play": "sd", "hdplay": "hd", "create_time": 1700000000}
        }).to_dict()

        self.assertTrue(body["success"])
        self.assertEqual(body["type"], "video")
        self.assertIsNone(body["photos"])
        self.assertEqual(body["created"], 1700000000)
        self.assertEqual(
            body["video"]["qualities"],
            [
                {"type": "hd", "url": "hd", "label": "HD Quality", "is_hd": True},
                {"type": "standard", "url": "sd", "label": "Standard Quality", "is_hd": False},
            ],
        )
        self.assertEqual(set(body["stats"]), {"likes", "comments", "shares", "views", "downloads", "followers"})

    def test_photo_to_dict_shape(self) -> None:
        body = normalize({"data": {"images": ["a", "b"]}}).to_dict()

        self.assertEqual(body["type"], "photos")
        self.assertIsNone(body["video"])
        self.assertEqual(body["photos"]["count"], 2)
        self.assertEqual(body["photos"]["all_images_urls"], ["a", "b"])
        self.assertEqual(
            body["photos"]["images"][1],
            {"id": 2, "url": "b", "thumbnail": "b", "download_url": "b"},
        )


if __name__ == "__main__":
    unittest.main()
