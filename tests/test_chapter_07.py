import os

import numpy as np
import pytest

from mbml.chapter_07.data import CrowdDatum, CrowdData, CrowdDataWithText, CrowdSynthesizer, WorkerType, \
    load_crowd_data, LABELS_FILE, GOLD_FILE
from mbml.chapter_07.vocabulary import tokenize, CorpusInformation, CrowdDataMapping, CrowdDataWithTextMapping
from mbml.chapter_07.models import HonestWorkerModel, BiasedWorkerModel, BiasedCommunityModel, \
    BiasedCommunityWordsModel, has_converged, dirichlet_kl, cpt_prior, normalize_log
from mbml.chapter_07.runners import MajorityVoteRunner, RandomRunner, ModelRunner, plot_confusion_matrix
from mbml.chapter_07.experiment import CrowdExperiment, build_models
from mbml.chapter_07.program import load_or_synthesize


def close_enough(x, y, r=6):
    return round(x, r) == round(y, r)


@pytest.fixture
def small():
    data = [CrowdDatum("w1", "t1", 2), CrowdDatum("w2", "t1", 0), CrowdDatum("w3", "t1", 0),
            CrowdDatum("w1", "t2", 3), CrowdDatum("w2", "t2", 1),
            CrowdDatum("w3", "t3", 1)]
    return CrowdData(data, {"t2": 3, "t4": 0})


@pytest.fixture(scope="module")
def synthesized():
    return CrowdSynthesizer(number_of_tweets=150, number_of_workers=12, judgments_per_tweet=5, seed=5).crowd_data()


class TestCrowdData():

    def test_ids(self, small):
        assert small.tweet_ids == ["t2", "t4", "t1", "t3"]
        assert small.worker_ids == ["w1", "w2", "w3"]
        assert str(small) == "#T:4, #G:2, #W: 3, #L:6"

    def test_majority_vote(self, small):
        votes = small.majority_vote_labels()
        assert votes["t1"] == 0
        # A tie goes to the label given first
        assert votes["t2"] == 3
        assert "t4" not in votes

    def test_split(self, synthesized):
        training, validation = synthesized.split_data(0.3, seed=1)
        assert len(training.gold_labels) == int(0.3 * len(synthesized.gold_labels))
        assert len(training.gold_labels) + len(validation.gold_labels) == len(synthesized.gold_labels)
        assert training.number_of_judgments + validation.number_of_judgments == synthesized.number_of_judgments
        assert all(d.tweet_id in validation.gold_labels for d in validation.data)
        assert isinstance(training, CrowdDataWithText)

    def test_split_fraction(self, small):
        with pytest.raises(ValueError):
            small.split_data(1.5)

    def test_limit(self, synthesized):
        limited = synthesized.limit_data(max_judgments=100, seed=1)
        assert limited.number_of_judgments == 100
        per_worker = synthesized.limit_data(max_per_worker=2, seed=1)
        assert max(per_worker.judgments_per_worker().values()) == 2
        busiest = synthesized.limit_data(max_workers=3, seed=1)
        assert busiest.number_of_workers == 3
        assert synthesized.limit_data(max_tweets=10, seed=1).number_of_tweets <= 10

    def test_restrict_to_single_tweet(self, small):
        single = small.restrict_to_single_tweet("t2")
        assert single.number_of_judgments == 2
        assert dict(single.gold_labels) == {"t2": 3}
        with pytest.raises(KeyError):
            small.restrict_to_single_tweet("t9")

    def test_workers_table(self, synthesized):
        workers = synthesized.workers()
        assert workers["Judgments"].sum() == synthesized.number_of_judgments
        assert ((workers["Accuracy"].dropna() >= 0) & (workers["Accuracy"].dropna() <= 1)).all()


class TestLoading():

    def test_round_trip(self, tmp_path):
        synthesizer = CrowdSynthesizer(number_of_tweets=30, number_of_workers=6, judgments_per_tweet=3, seed=2)
        written = synthesizer.synthesize(str(tmp_path))
        loaded = load_crowd_data(str(tmp_path))
        assert loaded.number_of_judgments == written.number_of_judgments
        assert dict(loaded.gold_labels) == dict(written.gold_labels)
        assert loaded.texts["T00003"] == written.texts["T00003"]
        assert loaded.data[0].body_text == written.texts[loaded.data[0].tweet_id]

    def test_unexpected_label(self, tmp_path):
        with open(os.path.join(str(tmp_path), LABELS_FILE), "w") as handle:
            handle.write("t1\tw1\t9\n")
        with open(os.path.join(str(tmp_path), GOLD_FILE), "w") as handle:
            handle.write("t1\t0\n")
        with pytest.raises(ValueError):
            load_crowd_data(str(tmp_path), with_text=False)

    def test_invalid_gold_dropped(self, tmp_path):
        with open(os.path.join(str(tmp_path), LABELS_FILE), "w") as handle:
            handle.write("t1\tw1\t1\nt2\tw1\t2\n")
        with open(os.path.join(str(tmp_path), GOLD_FILE), "w") as handle:
            handle.write("t1\t0\nt2\tunknown\n")
        data = load_crowd_data(str(tmp_path), with_text=False)
        assert dict(data.gold_labels) == {"t1": 0}

    def test_missing_folder(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_crowd_data(str(tmp_path / "nothing"))

    def test_program_synthesizes(self, tmp_path):
        data = load_or_synthesize(str(tmp_path / "data"), str(tmp_path / "out"), seed=1)
        assert os.path.exists(str(tmp_path / "out" / "Data" / LABELS_FILE))
        assert data.number_of_tweets == 400


class TestVocabulary():

    def test_placeholders(self):
        assert tokenize("@user12 see http://t.co/abc now!") == ["{username}", "see", "{httpaddr}", "now"]
        assert tokenize("42 Degrees") == ["{number}", "degrees"]
        assert tokenize("mail me@example.com") == ["mail", "{emailaddr}"]
        assert tokenize("42 degrees", placeholders=False) == ["42", "degrees"]

    def test_corpus(self):
        corpus = CorpusInformation(["a b", "a c", "a"], threshold=2)
        assert corpus.document_frequency == {"a": 3, "b": 1, "c": 1}
        assert corpus.thresholded_vocabulary == ["a"]
        assert corpus.get_word_indices("a b a") == [0, 0]
        assert close_enough(corpus.inverse_document_frequency("b"), np.log(1.5))

    def test_mapping(self, small):
        mapping = CrowdDataMapping(small)
        assert mapping.label_count == 4
        assert list(mapping.gold_label_indices()) == [3, 0, -1, -1]
        inputs = mapping.inputs(use_gold=False)
        assert inputs.judgment_count == 6
        assert (inputs.gold == -1).all()
        assert close_enough(mapping.average_worker_label_accuracy(), 0.5)

    def test_unexpected_labels(self, small):
        with pytest.raises(ValueError):
            CrowdDataMapping(small, label_values=[0, 1, 2])

    def test_text_mapping_shares_corpus(self, synthesized):
        training, validation = synthesized.split_data(0.3, seed=1)
        mapping = CrowdDataWithTextMapping(training, threshold=3)
        other = CrowdDataWithTextMapping(validation, mapping.label_values, corpus=mapping.corpus)
        assert other.vocabulary == mapping.vocabulary
        inputs = mapping.inputs()
        assert inputs.word_counts().shape == (mapping.tweet_count, len(mapping.vocabulary))


class TestModelHelpers():

    def test_has_converged(self):
        assert not has_converged([1.0, 1.0])
        assert has_converged([5.0, 1.0, 1.0 + 1e-7, 1.0])
        assert not has_converged([1.0, 1.1, 1.0])

    def test_dirichlet_kl(self):
        q = np.array([[2.0, 3.0], [1.0, 5.0]])
        assert close_enough(dirichlet_kl(q, q), 0.0)
        assert dirichlet_kl(q, np.ones((2, 2))) > 0.0
        assert dirichlet_kl(np.zeros((2, 0)), np.zeros((2, 0))) == 0.0

    def test_cpt_prior_and_normalize(self):
        prior = cpt_prior(3)
        assert prior[0, 0] == 60.0 and prior[0, 1] == 10.0
        assert np.allclose(normalize_log(np.log([[1.0, 3.0]])), [[0.25, 0.75]])


class TestModels():

    def test_agreeing_workers_decide(self, small):
        mapping = CrowdDataMapping(small)
        posteriors = BiasedWorkerModel(print_logs=False).infer(mapping.inputs(use_gold=False))
        assert np.allclose(posteriors.true_label.sum(axis=1), 1.0)
        assert np.argmax(posteriors.true_label[mapping.tweet_id_to_index["t1"]]) == 0
        assert posteriors.iterations >= 1

    def test_gold_labels_are_clamped(self, small):
        mapping = CrowdDataMapping(small)
        posteriors = HonestWorkerModel(print_logs=False).infer(mapping.inputs())
        assert list(posteriors.true_label[mapping.tweet_id_to_index["t2"]]) == [0.0, 0.0, 0.0, 1.0]

    def test_evidence_settles(self, synthesized):
        mapping = CrowdDataMapping(synthesized)
        posteriors = BiasedWorkerModel(max_iterations=50, print_logs=False).infer(mapping.inputs())
        history = posteriors.evidence_history
        assert np.isfinite(history).all()
        assert abs(history[-1] - history[-2]) < abs(history[1] - history[0])

    def test_needs_two_labels(self, small):
        mapping = CrowdDataMapping(CrowdData([CrowdDatum("w1", "t1", 0)]), label_values=[0])
        with pytest.raises(ValueError):
            HonestWorkerModel(print_logs=False).infer(mapping.inputs())

    def test_community_guards(self, small):
        with pytest.raises(ValueError):
            BiasedCommunityModel(0)
        with pytest.raises(ValueError):
            BiasedCommunityWordsModel(2, print_logs=False).infer(CrowdDataMapping(small).inputs())

    def test_honest_workers_more_able_than_spammers(self):
        k = 4
        types = [WorkerType("Honest", 0.9 * np.eye(k) + 0.1 / k, 0.5), WorkerType("Spammer", np.ones((k, k)), 0.5)]
        synthesizer = CrowdSynthesizer(number_of_tweets=200, number_of_workers=20, judgments_per_tweet=5,
                                       worker_types=types, seed=11)
        data = synthesizer.crowd_data()
        runner = ModelRunner(CrowdDataMapping(data), HonestWorkerModel(print_logs=False)).run()
        abilities = runner.worker_abilities()
        kinds = synthesizer.worker_kinds
        honest = np.mean([abilities[w] for w in abilities.index if kinds[w] == "Honest"])
        spammer = np.mean([abilities[w] for w in abilities.index if kinds[w] == "Spammer"])
        assert honest > spammer


class TestRunners():

    def test_majority_vote_runner(self, small):
        runner = MajorityVoteRunner(CrowdDataMapping(small)).run()
        assert runner.accuracy == 1.0
        assert np.isnan(runner.average_log_prob)
        assert list(runner.results()) == ["Accuracy", "AverageRecall", "AverageLogProb"]

    def test_random_runner(self, small):
        runner = RandomRunner(CrowdDataMapping(small)).run()
        assert close_enough(runner.average_log_prob, np.log(0.25))
        assert set(runner.predictions) == set(small.tweet_ids)
        assert np.allclose(runner.true_label, 0.25)
        assert set(runner.predictions.values()) <= set(runner.mapping.label_values)

    def test_validation_beats_chance(self, synthesized):
        training, validation = synthesized.split_data(0.3, seed=1)
        training_mapping = CrowdDataWithTextMapping(training, threshold=3)
        validation_mapping = CrowdDataWithTextMapping(validation, training_mapping.label_values,
                                                      corpus=training_mapping.corpus)
        for model in [BiasedWorkerModel(print_logs=False), BiasedCommunityWordsModel(2, print_logs=False)]:
            trained = ModelRunner(training_mapping, model).run()
            validated = ModelRunner(validation_mapping, model, trained).run()
            assert validated.accuracy > 0.5
            assert validated.average_log_prob > np.log(0.25)
            assert validated.confusion_matrix().values.sum() == len(validation.gold_labels)
        words = trained.most_informative_words(count=3)
        assert list(words.columns) == ["Negative", "Neutral", "Positive", "Unrelated"]
        assert plot_confusion_matrix(validated) is not None

    def test_validation_needs_trained_runner(self, small):
        mapping = CrowdDataMapping(small)
        model = BiasedWorkerModel(print_logs=False)
        with pytest.raises(ValueError):
            ModelRunner(mapping, model, ModelRunner(mapping, model)).run()


class TestExperiment():

    def test_build_models(self):
        models = build_models(community_counts=[1, 3], print_logs=False)
        assert list(models) == ["MajorityVote", "Honest", "Biased", "Community1", "Community3", "CommunityWords"]
        assert models["MajorityVote"] is None
        assert models["CommunityWords"].community_count == 3
        with pytest.raises(KeyError):
            build_models(["Oracle"])

    def test_run(self, synthesized):
        experiment = CrowdExperiment(synthesized, model_types=("MajorityVote", "Biased"), num_data_sizes=2,
                                     threshold=3, print_logs=False)
        assert list(experiment.training_sizes()) == ["TrainingPercent_50", "TrainingPercent_100"]
        results = experiment.run()
        assert len(results) == 2 * 2 * 2
        table = experiment.metric_table("Accuracy")
        assert table.shape == (2, 2)
        assert experiment.plot_strip() is not None
        assert experiment.plot_learning_curves() is not None
