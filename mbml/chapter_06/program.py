import os
import sys
import tempfile

from mbml.config import ASTHMA_CONFIG, DATA_DIR
from mbml.common.program import build_parser, run_program
from mbml.common.timer import CodeTimer
from mbml.chapter_06.data import AllergenData
from mbml.chapter_06.synthesizer import DatasetSynthesizer
from mbml.chapter_06.models import AsthmaModel
from mbml.chapter_06.clinical_trial import ClinicalTrialExperiment
from mbml.chapter_06 import plots


def load_or_synthesize(data_dir, output_dir, seed):
    path = os.path.join(data_dir, "asthma", "SyntheticAllergenData.tsv")
    if os.path.exists(path):
        print("Loading allergen data from '%s'" % path)
        return AllergenData.load(path)
    print("No allergen data in '%s', synthesizing it" % path)
    folder = os.path.join(output_dir, "Data") if output_dir else tempfile.mkdtemp(prefix="mbml_asthma_")
    synthesized = DatasetSynthesizer(seed=seed).synthesize(os.path.join(folder, "SyntheticAllergenData.tsv"))
    return AllergenData.load(synthesized)


def output_beliefs(outputter, name, beliefs, data):
    outputter.out(plots.plot_transition_probabilities(beliefs), name, "Gain")
    outputter.out(plots.plot_transition_probabilities(beliefs, retain=True), name, "Retain")
    outputter.out(plots.positive_test_probabilities_table(beliefs), name, "Conditional probabilities of positive test")
    by_allergen = plots.sensitization_per_allergen_per_class(beliefs, use_percentages=True)
    outputter.out(plots.plot_sensitization(by_allergen, "Sensitization"), name, "Sensitization per allergen")
    by_year = plots.sensitization_per_year_per_class(beliefs, use_percentages=True)
    outputter.out(plots.plot_sensitization(by_year, "Sensitization"), name, "Sensitization per year")
    for key, table in plots.children_with_inferred_sensitization(beliefs).items():
        outputter.out(table, name, "Children with inferred sensitization", "Class of %s" % key)
    if data.outcome_names:
        outputter.out(plots.percentage_children_with_outcome(beliefs, data), name, "Percentage children with outcome")
        outputter.out(plots.plus_minus_children_with_outcome(beliefs, data), name, "Children with outcome")


def run(args, outputter):
    seed = ASTHMA_CONFIG.SYNTHESIS_SEED if args.seed is None else args.seed
    all_data = load_or_synthesize(args.data_dir or str(DATA_DIR), args.output_dir, seed)
    all_data.summary()
    data = all_data.remove_allergens(list(ASTHMA_CONFIG.REMOVED_ALLERGENS))
    outputter.out(all_data.data_counts(), "Data", "Data counts")

    model = AsthmaModel()
    with CodeTimer("Training the model with one class"):
        beliefs = model.run(data, 1)
    outputter.out(plots.positive_test_probabilities_table(beliefs), "One class", "Conditional probabilities of positive test")
    outputter.out(plots.plot_transition_probabilities(beliefs), "One class", "Gain")
    outputter.out(plots.plot_transition_probabilities(beliefs, retain=True), "One class", "Retain")

    trial = ClinicalTrialExperiment()
    trial.run()
    outputter.out(trial.has_effect_table(), "Clinical trial", "ProbHasEffect")
    outputter.out(trial.plot_posteriors(), "Clinical trial", "ProbOfGoodOutcomeCharts")
    grubin, autocorrelation, has_effect = trial.sampling_diagnostics(trial.sizes[0])
    print("NUTS estimate of P(treatment has effect) with %s patients per group: %.4f" % (trial.sizes[0], has_effect))
    outputter.out(grubin.to_frame(), "Clinical trial", "Gelman-Rubin")
    outputter.out(autocorrelation, "Clinical trial", "Autocorrelation")

    for number_of_classes in ASTHMA_CONFIG.CLASS_COUNTS:
        with CodeTimer("Training the model with %s classes" % number_of_classes):
            beliefs = model.run(data, number_of_classes)
        output_beliefs(outputter, "AsthmaResults%s" % number_of_classes, beliefs, data)


def main(argv=None):
    args = build_parser("Understanding asthma").parse_args(argv)
    return run_program(run, args, name="Understanding Asthma")


if __name__ == "__main__":
    sys.exit(main())
