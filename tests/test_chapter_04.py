import numpy as np
import pytest

from mbml.chapter_04.data import Message, User, InboxSynthesizer
from mbml.chapter_04.features import FeatureSet, Sender, SubjectPrefix, to_cc_position, length_bucket, \
    length_bucket_names, UNKNOWN_SENDER
from mbml.chapter_04.models import WeightPosterior, ReplyToModel, OneFeatureNoNoiseModel, CommunityModel
from mbml.chapter_04.experiment import Experiment, OnlineExperiment


def message(index, to, cc=(), sender="bob", subject="hello", replied=False):
    return Message(index, sender, to, cc, subject, "some text", is_replied=replied)


@pytest.fixture
def user():
    messages = [message(i, ["me"] if i % 2 == 0 else ["list-1"], replied=i % 2 == 0) for i in range(40)]
    return User("me", messages, split_fractions=(0.5, 0.25, 0.25))


class TestMessages():

    def test_subject_prefix(self):
        assert message(1, [], subject="RE: budget").subject_prefix == "re"
        assert message(1, [], subject="Re: Re: budget").subject_without_prefix == "budget"
        assert message(1, [], subject="Meeting at 10:30").subject_prefix is None
        assert message(1, [], subject="").subject_prefix is None

    def test_user_split(self, user):
        assert (len(user.train), len(user.validation), len(user.test)) == (20, 10, 10)
        assert user.train_contacts == ["bob"]
        assert user.reply_fraction() == 0.5

    def test_split_must_sum_to_one(self):
        with pytest.raises(ValueError):
            User("me", [], split_fractions=(0.5, 0.5, 0.5))


class TestFeatures():

    def test_to_cc_position(self):
        assert to_cc_position("me", message(1, ["me"])) == "FirstInToLine"
        assert to_cc_position("me", message(1, ["a", "b", "c", "me"])) == "ThirdOrMoreInToLine"
        assert to_cc_position("me", message(1, ["me"], cc=["a", "me"])) == "NotFirstInCcLine"
        assert to_cc_position("me", message(1, ["list-0"])) == "PartOfList"

    def test_length_buckets(self):
        bins = [0, 4, 8, 2 ** 31 - 1]
        assert length_bucket_names(bins) == ["0", "1-4", "5-8", ">8"]
        assert [length_bucket(n, bins) for n in [0, 3, 8, 9]] == [0, 1, 2, 3]

    def test_subject_prefix_groups(self, user):
        feature = SubjectPrefix()
        assert feature.bucket_names(user) == ["No prefix", "re", "fw/fwd", "Other"]
        assert feature.compute(user, message(1, [], subject="Fwd: x")) == [(2, 1.0)]
        assert feature.compute(user, message(1, [], subject="Sale: x")) == [(3, 1.0)]
        assert feature.compute(user, message(1, [], subject="hello")) == [(0, 1.0)]

    def test_unknown_sender(self, user):
        feature = Sender()
        assert feature.bucket_names(user)[0] == UNKNOWN_SENDER
        assert feature.compute(user, message(1, [], sender="stranger")) == [(0, 1.0)]

    def test_feature_set_is_one_hot_per_feature(self, user):
        feature_set = FeatureSet.create("Full")
        assert not feature_set.features[-1].is_shared
        matrix = feature_set.dense_matrix(user, user.messages[:5])
        assert matrix.shape == (5, feature_set.number_of_buckets(user))
        assert (matrix.sum(axis=1) == len(feature_set.features)).all()
        shared = feature_set.dense_matrix(user, user.messages[:5], shared_only=True)
        assert shared.shape[1] < matrix.shape[1]

    def test_unknown_feature_set(self):
        with pytest.raises(KeyError):
            FeatureSet.create("Nothing")


class TestModels():

    def test_prior(self):
        prior = WeightPosterior.prior(3)
        assert prior.number_of_buckets == 3
        assert prior.covariance.shape == (4, 4)
        assert prior.threshold.variance > 0

    def test_learns_to_line(self, user):
        model = ReplyToModel(FeatureSet.create("Single"))
        posterior = model.train(user, user.train)
        not_on, on = posterior.weights
        assert on.mean > not_on.mean
        probabilities = model.predict(user, user.test, posterior)
        on_to = np.array([m.is_replied for m in user.test])
        assert probabilities[on_to].min() > probabilities[~on_to].max()

    def test_training_shrinks_uncertainty(self, user):
        model = ReplyToModel(FeatureSet.create("Single"))
        posterior = model.train(user, user.train)
        prior = WeightPosterior.prior(posterior.number_of_buckets)
        assert np.trace(posterior.covariance) < np.trace(prior.covariance)

    def test_no_noise_gives_probabilities(self, user):
        model = OneFeatureNoNoiseModel(FeatureSet.create("Single"))
        posterior = model.train(user, user.train[:4])
        probabilities = model.predict(user, user.test, posterior)
        assert ((probabilities >= 0) & (probabilities <= 1)).all()


class TestSynthesizer():

    def test_users(self):
        users = InboxSynthesizer(number_of_users=2, messages_per_user=50, seed=1).users()
        assert len(users) == 2
        assert all(len(u.messages) == 50 for u in users)
        assert 0.0 < sum(u.reply_fraction() for u in users) < 2.0


@pytest.fixture(scope="module")
def inbox_users():
    return InboxSynthesizer(number_of_users=2, messages_per_user=50, seed=1).users()


class TestCommunity():

    def test_untrained(self, user):
        with pytest.raises(ValueError):
            CommunityModel(FeatureSet.create("Full"), print_logs=False).predict(user, user.test)

    def test_personal_prior_carries_community(self, inbox_users):
        feature_set = FeatureSet.create("Full")
        community = CommunityModel(feature_set, steps=20, print_logs=False)
        posterior = community.train(inbox_users)
        shared = len(posterior.weight_means)
        assert shared == feature_set.number_of_buckets(inbox_users[0], shared_only=True)
        assert (posterior.predictive_variances >= 1.0 / posterior.weight_precisions).all()

        prior = community.personal_prior(inbox_users[0])
        variances = np.diag(prior.covariance)
        assert np.allclose(prior.mean[:shared], posterior.weight_means)
        assert np.allclose(variances[:shared], posterior.predictive_variances)
        assert (variances[:shared] >= 1.0 / posterior.weight_precisions).all()
        # Sender buckets keep the default prior
        assert (prior.mean[shared:-1] == 0.0).all()
        assert (variances[shared:-1] == 1.0).all()

        probabilities = community.predict(inbox_users[1], inbox_users[1].test)
        assert probabilities.shape == (len(inbox_users[1].test),)
        assert ((probabilities > 0) & (probabilities < 1)).all()


class TestExperiments():

    def test_validation_and_community_results(self, inbox_users):
        feature_set = FeatureSet.create("Full")
        experiment = Experiment("Community", inbox_users, ReplyToModel(feature_set),
                                community=CommunityModel(feature_set, steps=20, print_logs=False), print_logs=False)
        experiment.run()
        validation = experiment.summary_table(validation=True)
        assert list(validation.index) == [u.name for u in inbox_users] + ["Average"]
        assert list(validation["Messages"].iloc[:2]) == [len(u.validation) for u in inbox_users]
        assert list(experiment.summary_table()["Messages"].iloc[:2]) == [len(u.test) for u in inbox_users]
        assert len(experiment.community_table()) == 3

    def test_no_community_table_without_community(self, user):
        experiment = Experiment("Single", [user], ReplyToModel(FeatureSet.create("Single")), print_logs=False)
        experiment.run()
        with pytest.raises(ValueError):
            experiment.community_table()

    def test_online_batches(self, user):
        online = OnlineExperiment([user], ReplyToModel(FeatureSet.create("Single")), batch_sizes=[5, 20],
                                  print_logs=False)
        online.run()
        assert list(online.area_under_curve.index) == [5, 10, 15, 20]
        assert online.area_under_curve[20].notna().sum() == 1
        assert online.area_under_curve.loc[20, 5] == 1.0
        assert online.area_under_curve.loc[20, 20] == 1.0

    def test_online_batch_sizes(self, user):
        with pytest.raises(ValueError):
            OnlineExperiment([user], ReplyToModel(FeatureSet.create("Single")), batch_sizes=[0])
