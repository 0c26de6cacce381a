import pytest

from rdb_analyzer.svg import SVGCanvas, fmt


def test_fmt():
    assert fmt(10) == "10"
    assert fmt(10.0) == "10"
    assert fmt(2.5) == "2.5"
    assert fmt(1 / 3) == "0.33"
    assert fmt(-0.001) == "0"
    assert fmt(100.004) == "100"


def test_document_structure():
    canvas = SVGCanvas()
    canvas.start(1200, 900)
    canvas.title("RDB statistics")
    canvas.rect(0, 0, 1200, 900, "fill:none")
    canvas.end()

    text = canvas.to_bytes().decode("utf-8")

    assert text.startswith('<?xml version="1.0"?>\n<svg width="1200" height="900"')
    assert 'xmlns="http://www.w3.org/2000/svg"' in text
    assert "<title>RDB statistics</title>" in text
    assert '<rect x="0" y="0" width="1200" height="900" style="fill:none" />' in text
    assert text.rstrip().endswith("</svg>")


def test_text_and_attributes_are_escaped():
    canvas = SVGCanvas()
    canvas.text(1, 2, "keys <&> \"quoted\"", 'font-family:"A&B"')

    text = canvas.to_bytes().decode("utf-8")

    assert "keys &lt;&amp;&gt;" in text
    assert "&amp;B" in text


def test_groups_must_balance():
    canvas = SVGCanvas()
    canvas.start(10, 10)
    canvas.gstyle("fill:white")

    with pytest.raises(ValueError):
        canvas.end()

    canvas.gend()
    with pytest.raises(ValueError):
        canvas.gend()
    canvas.end()


def test_path_and_circle():
    canvas = SVGCanvas()
    canvas.circle(5, 6.25, 7, "fill:#FF0000")
    canvas.path("M0,0 L1,1 z", "fill:#00FF00")

    text = canvas.to_bytes().decode("utf-8")

    assert '<circle cx="5" cy="6.25" r="7" style="fill:#FF0000" />' in text
    assert '<path d="M0,0 L1,1 z" style="fill:#00FF00" />' in text
