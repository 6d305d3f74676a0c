import pytest
import requests

from labelconv import diagnostics
from labelconv.adapt_resize import AdaptResizeTransformer
from labelconv.config import EnhanceOptions
from labelconv.converters import (
    build_transformers,
    enhance_label_studio,
    enhance_ppocr,
    label_studio_to_ppocr,
    make_enhanced_label_studio_output_resolver,
    make_label_studio_input_resolver,
    make_label_studio_output_resolver,
    make_ppocr_output_resolver,
    ppocr_to_label_studio,
    resolve_enhanced_ppocr_output_path,
    resolve_ppocr_input_path,
)
from labelconv.diagnostics import DiagnosticSink
from labelconv.label_studio import DialectError
from labelconv.ppocr import format_label_file, parse_label_file
from labelconv.sort import SortTransformer
from labelconv.transformers import NormalizeTransformer, ResizeTransformer, RoundTransformer

SIZE = {"original_width": 200, "original_height": 100}
POLYGON = [[25, 50], [75, 50], [75, 75]]


class FakeResponse:
    def __init__(self, content=b"", status_code=200):
        self.content = content
        self.status_code = status_code
        self.ok = status_code < 400
        self.closed = False

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start : start + chunk_size]

    def close(self):
        self.closed = True


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, timeout=None, stream=False):
        self.calls.append((url, timeout, stream))
        if self.error is not None:
            raise self.error
        return self.response


def test_ppocr_input_path_relative_to_opened_folder():
    assert resolve_ppocr_input_path("ch/a.png", "/data/ch/Label.txt") == "/data/ch/a.png"
    assert resolve_ppocr_input_path("a.png", "/data/ch/Label.txt") == "/data/ch/a.png"
    assert resolve_ppocr_input_path("sub/a.png", "/data/ch/Label.txt") == "/data/ch/sub/a.png"


def test_label_studio_local_paths_are_relative_to_task_file():
    resolve = make_label_studio_input_resolver()
    assert resolve("/img/a.png", "/data/tasks.json") == "/data/img/a.png"
    assert resolve("img/a.png", "/data/tasks.json") == "/data/img/a.png"


def test_label_studio_remote_image_is_downloaded_once(tmp_path):
    task_file = str(tmp_path / "tasks.json")
    session = FakeSession(FakeResponse(b"image-bytes"))
    resolve = make_label_studio_input_resolver(session=session)
    local = resolve("http://host/img/a%20b.png", task_file)
    assert local == str(tmp_path / "a b.png")
    assert (tmp_path / "a b.png").read_bytes() == b"image-bytes"
    assert not (tmp_path / "a b.png.part").exists()
    assert session.calls[0][2] is True
    assert session.response.closed

    broken = make_label_studio_input_resolver(session=FakeSession(error=requests.ConnectionError("down")))
    assert broken("http://host/img/a%20b.png", task_file) == local


@pytest.mark.parametrize(
    "session",
    [FakeSession(FakeResponse(status_code=404)), FakeSession(error=requests.Timeout("slow"))],
)
def test_failed_download_is_reported(tmp_path, session):
    sink = DiagnosticSink()
    resolve = make_label_studio_input_resolver(sink, session)
    assert resolve("https://host/img/a.png", str(tmp_path / "tasks.json")) == str(tmp_path / "a.png")
    assert sink.codes() == [diagnostics.IMAGE_MISSING]
    assert not (tmp_path / "a.png").exists()


def test_ppocr_output_resolver():
    assert make_ppocr_output_resolver("/out/images")("/tmp/x/a.png", "t.json") == "images/a.png"
    assert make_ppocr_output_resolver("/out/images/", "pics")("/tmp/x/a.png", "t.json") == "pics/a.png"


def test_enhanced_ppocr_output_keeps_folder_prefix():
    assert resolve_enhanced_ppocr_output_path("/data/ch/sub/a.png", "/data/ch/Label.txt") == "ch/sub/a.png"


def test_label_studio_output_resolver():
    assert make_label_studio_output_resolver()("/data/ch/a b.png", "t") == "http://localhost:8081/a%20b.png"
    assert make_label_studio_output_resolver("http://h/files/")("/x/a#1.png", "t") == "http://h/files/a#1.png"
    assert make_label_studio_output_resolver("")("/x/a.png", "t") == "/a.png"
    assert make_label_studio_output_resolver(None)("/x/a.png", "t") == "a.png"
    resolve = make_label_studio_output_resolver("http://h", "input-dir", "/data")
    assert resolve("/data/ch/a.png", "t") == "http://h/ch/a.png"


def test_enhanced_label_studio_output_resolver():
    assert make_enhanced_label_studio_output_resolver(None, "/data")("/data/ch/a.png", "t") == "ch/a.png"
    assert make_enhanced_label_studio_output_resolver("http://h/", "/data")("/data/ch/a.png", "t") == "http://h/ch/a.png"
    assert make_enhanced_label_studio_output_resolver()("/data/ch/a.png", "t") == "/data/ch/a.png"


def test_build_transformers_order():
    chain = build_transformers(EnhanceOptions(), 0)
    assert [type(t) for t in chain] == [NormalizeTransformer, ResizeTransformer, RoundTransformer, SortTransformer]
    assert chain[2].precision == 0

    chain = build_transformers(EnhanceOptions(adapt_resize=True, precision=2), -1)
    assert isinstance(chain[2], AdaptResizeTransformer)
    assert chain[3].precision == 2


def test_ppocr_to_label_studio_full(make_image, tmp_path):
    make_image("ch/a.png")
    row = '[{"transcription": "t", "points": [[50, 25], [100, 25], [100, 50], [50, 50]]}]'
    tasks = parse_label_file(f"ch/a.png\t{row}\nch/a.png\t[]\n")
    result = ppocr_to_label_studio(tasks, str(tmp_path / "ch" / "Label.txt"))
    assert [task["id"] for task in result] == [1, 2]
    first = result[0]
    assert first["data"]["ocr"] == "http://localhost:8081/a.png"
    assert first["annotations"][0]["id"] == 1
    assert first["annotations"][0]["task"] == 1
    polygon = first["annotations"][0]["result"][0]
    assert polygon["value"]["points"] == [[25, 25], [50, 25], [50, 50], [25, 50]]
    assert polygon["original_width"] == 200
    assert result[1]["annotations"][0]["result"] == []


def test_ppocr_to_label_studio_min_with_sorting(make_image, tmp_path):
    make_image("ch/a.png")
    row = (
        '[{"transcription": "lower", "points": [[0, 80], [10, 80], [10, 90], [0, 90]]},'
        ' {"transcription": "upper", "points": [[0, 0], [10, 0], [10, 10], [0, 10]]}]'
    )
    options = EnhanceOptions(sort_vertical="top-bottom")
    [task] = ppocr_to_label_studio(
        parse_label_file(f"ch/a.png\t{row}"), str(tmp_path / "ch" / "Label.txt"), options, full=False
    )
    assert task["transcription"] == ["upper", "lower"]
    assert task["annotation_id"] == 1


def test_label_studio_to_ppocr(make_image, tmp_path):
    make_image("img/a.png")
    record = {
        "id": 1,
        "data": {"ocr": "/img/a.png"},
        "annotations": [
            {
                "result": [
                    {"id": "r", "type": "polygon", "value": {"points": POLYGON}, **SIZE},
                    {"id": "r", "type": "textarea", "value": {"text": ["hello", "world"]}},
                ]
            }
        ],
    }
    result = label_studio_to_ppocr([record], str(tmp_path / "tasks.json"), output_dir=str(tmp_path / "out" / "images"))
    assert format_label_file(result) == (
        'images/a.png\t[{"transcription":"hello world","points":[[50,50],[150,50],[150,75]]}]\n'
    )


def test_label_studio_to_ppocr_rejects_mixed_dialects(tmp_path):
    records = [{"id": 1, "data": {"ocr": "a.png"}}, {"id": 2, "ocr": "b.png"}]
    with pytest.raises(DialectError):
        label_studio_to_ppocr(records, str(tmp_path / "tasks.json"), output_dir=str(tmp_path))


def test_enhance_ppocr_adapts_boxes(make_image, tmp_path):
    make_image("ch/a.png", ink=[(70, 40, 79, 49)])
    tasks = parse_label_file('ch/a.png\t[{"transcription": "x", "points": [[60, 30], [90, 30], [90, 60], [60, 60]]}]')
    sink = DiagnosticSink()
    options = EnhanceOptions(adapt_resize=True)
    [task] = enhance_ppocr(tasks, str(tmp_path / "ch" / "Label.txt"), options, sink=sink)
    assert task.image_path == "ch/a.png"
    assert task.data[0].model_dump()["points"] == [[65, 35], [85, 35], [85, 55], [65, 55]]
    assert len(sink) == 0


def test_enhance_label_studio_min(tmp_path):
    record = {"ocr": "/img/a.png", "id": 4, "poly": [{"points": POLYGON, **SIZE}], "transcription": ["x"]}
    [task] = enhance_label_studio([record], str(tmp_path / "tasks.json"), out_dir=str(tmp_path))
    assert task["ocr"] == "img/a.png"
    assert task["id"] == 4
    assert task["poly"][0]["points"] == [[25, 50], [75, 50], [75, 75]]
    assert task["transcription"] == ["x"]
