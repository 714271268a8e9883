import pytest

from sugarcane_scan.errors import InputError
from sugarcane_scan.leaf_validator import LeafValidationEngine, ModelState, load_leaf_model
from sugarcane_scan.train import LeafModelTrainer, build_model, create_synthetic_training_data

from conftest import encode_jpeg, make_flat_image, make_leaf_image


def test_synthetic_data_shapes():
    leaves, others = create_synthetic_training_data(3, 2, seed=0)
    assert len(leaves) == 3 and len(others) == 2
    assert leaves[0].shape == (320, 160, 3)
    assert others[0].shape == (224, 224, 3)


def test_build_model_rejects_unknown_type():
    with pytest.raises(ValueError):
        build_model('gradient_boosting')


def test_trained_model_drives_the_engine(tmp_path):
    output = tmp_path / 'models' / 'leaf_model.joblib'
    trainer = LeafModelTrainer(n_estimators=5)

    results = trainer.run(None, str(output), synthetic_samples=8)

    assert output.exists()
    assert 0.0 <= results['accuracy'] <= 1.0
    assert results['n_train'] + results['n_test'] == 16
    assert list(load_leaf_model(str(output)).classes_) == [0, 1]

    engine = LeafValidationEngine(model_path=str(output))
    result = engine.validate(make_leaf_image())
    assert result.method == 'model'
    assert engine.state is ModelState.READY


def test_load_dataset_from_folders(tmp_path):
    for folder, image in (('leaf', make_leaf_image()), ('non_leaf', make_flat_image(90))):
        (tmp_path / folder).mkdir()
        for i in range(2):
            (tmp_path / folder / f'{i}.jpg').write_bytes(encode_jpeg(image))
    (tmp_path / 'leaf' / 'broken.png').write_bytes(b'not an image')
    (tmp_path / 'leaf' / 'readme.txt').write_text('ignored')

    leaves, others = LeafModelTrainer().load_dataset(str(tmp_path))

    assert len(leaves) == 2
    assert len(others) == 2


def test_load_dataset_requires_both_folders(tmp_path):
    (tmp_path / 'leaf').mkdir()
    with pytest.raises(InputError):
        LeafModelTrainer().load_dataset(str(tmp_path))


def test_save_before_training_fails(tmp_path):
    with pytest.raises(ValueError):
        LeafModelTrainer().save_model(str(tmp_path / 'model.joblib'))
