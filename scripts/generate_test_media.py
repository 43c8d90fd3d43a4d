#!/usr/bin/env python3
"""Generate synthetic test media for manual yujin pipeline runs.

Produces ~22 seconds of alternating tone and silence (about 7 seconds of
it silent), so a condensed copy should come out near 15 seconds:
  0-3s   440 Hz tone
  3-6s   silence
  6-10s  880 Hz tone
  10-12s silence
  12-16s 440 Hz tone
  16-18s silence
  18-22s 660 Hz tone

Pass ``--video`` to mux a black video track (exercises the -vn path), and
``--tree`` to lay out a nested directory for batch-mode runs.
"""

import argparse
import subprocess
from pathlib import Path

AUDIO_FILTER = (
    "sine=f=440:d=3[a0];"
    "anullsrc=d=3[s0];"
    "sine=f=880:d=4[a1];"
    "anullsrc=d=2[s1];"
    "sine=f=440:d=4[a2];"
    "anullsrc=d=2[s2];"
    "sine=f=660:d=4[a3];"
    "[a0][s0][a1][s1][a2][s2][a3]concat=n=7:v=0:a=1[aout]"
)


def generate_test_media(output: Path, video: bool = False) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)

    filter_complex = AUDIO_FILTER
    maps = ["-map", "[aout]"]
    if video:
        filter_complex += ";color=c=black:s=320x240:d=22:r=30[vout]"
        maps = ["-map", "[vout]", *maps, "-c:v", "libx264"]

    cmd = [
        "ffmpeg", "-y",
        "-filter_complex", filter_complex,
        *maps,
        "-shortest",
        str(output),
    ]
    subprocess.run(cmd, check=True)
    print(f"Generated: {output}")


def generate_tree(root: Path) -> None:
    """root/Intro.mp3, root/Season1/Ep1.mkv, root/Season1/Ep2.mkv, root/Season1/Lecture.mkv"""
    generate_test_media(root / "Intro.mp3")
    for name in ("Ep1.mkv", "Ep2.mkv", "Lecture.mkv"):
        generate_test_media(root / "Season1" / name, video=True)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("output", nargs="?", type=Path, default=Path("tests/fixtures/synthetic.mp3"))
    parser.add_argument("--video", action="store_true", help="Include a video track")
    parser.add_argument("--tree", action="store_true", help="Treat OUTPUT as a directory and build a batch tree")
    args = parser.parse_args()

    if args.tree:
        generate_tree(args.output)
    else:
        generate_test_media(args.output, video=args.video)
