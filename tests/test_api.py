import pytest
from fastapi.testclient import TestClient

from labelconv.main import app


@pytest.fixture
def client():
    return TestClient(app)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ppocr_to_label_studio(client, make_image, tmp_path):
    make_image("ch/a.png")
    payload = {
        "task_file_path": str(tmp_path / "ch" / "Label.txt"),
        "label_text": 'ch/a.png\t[{"transcription": "t", "points": [[50, 25], [100, 25], [100, 50], [50, 50]]}]\n',
        "output_mode": "predictions",
    }
    response = client.post("/convert/ppocr-to-label-studio", json=payload)
    assert response.status_code == 200
    body = response.json()
    assert body["diagnostics"] == []
    [task] = body["tasks"]
    assert task["id"] == 1
    assert task["predictions"][0]["result"][0]["value"]["points"][0] == [25, 25]


def test_missing_image_is_reported_not_fatal(client, tmp_path):
    payload = {
        "task_file_path": str(tmp_path / "Label.txt"),
        "label_text": 'gone.png\t[{"transcription": "t", "points": [[0, 0], [1, 1]]}]',
    }
    response = client.post("/convert/ppocr-to-label-studio", json=payload)
    assert response.status_code == 200
    [event] = response.json()["diagnostics"]
    assert event["code"] == "image_size_unknown"
    assert event["level"] == "WARNING"


def test_malformed_label_text_is_unprocessable(client, tmp_path):
    payload = {"task_file_path": str(tmp_path / "Label.txt"), "label_text": "a.png\tnot-json"}
    response = client.post("/enhance/ppocr", json=payload)
    assert response.status_code == 422
    assert "Line 1" in response.json()["detail"]


def test_invalid_option_is_rejected(client, tmp_path):
    payload = {
        "task_file_path": str(tmp_path / "Label.txt"),
        "label_text": "",
        "options": {"sort_vertical": "sideways"},
    }
    assert client.post("/enhance/ppocr", json=payload).status_code == 422


def test_unknown_dialect_is_bad_request(client, tmp_path):
    payload = {"task_file_path": str(tmp_path / "tasks.json"), "tasks": [{"id": 1}], "output_dir": str(tmp_path)}
    response = client.post("/convert/label-studio-to-ppocr", json=payload)
    assert response.status_code == 400


def test_label_studio_to_ppocr(client, tmp_path):
    task = {
        "id": 1,
        "data": {"ocr": "/img/a.png"},
        "annotations": [
            {
                "result": [
                    {
                        "id": "r",
                        "type": "polygon",
                        "value": {"points": [[25, 50], [75, 50]]},
                        "original_width": 200,
                        "original_height": 100,
                    }
                ]
            }
        ],
    }
    payload = {"task_file_path": str(tmp_path / "tasks.json"), "tasks": [task], "output_dir": "/out/images"}
    response = client.post("/convert/label-studio-to-ppocr", json=payload)
    assert response.status_code == 200
    assert response.json()["label_text"] == 'images/a.png\t[{"transcription":"","points":[[50,50],[150,50]]}]\n'


def test_enhance_label_studio_min(client, tmp_path):
    task = {"ocr": "a.png", "id": 2, "poly": [{"points": [[10, 10], [20, 10], [20, 20], [10, 20]], "original_width": 100, "original_height": 100}]}
    payload = {
        "task_file_path": str(tmp_path / "tasks.json"),
        "tasks": [task],
        "options": {"width_increment": 10, "precision": 0},
    }
    response = client.post("/enhance/label-studio", json=payload)
    assert response.status_code == 200
    [result] = response.json()["tasks"]
    assert result["poly"][0]["points"] == [[5, 10], [25, 10], [25, 20], [5, 20]]
