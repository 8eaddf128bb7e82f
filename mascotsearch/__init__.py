#!python


__project__ = "mascotsearch"
__version__ = "0.3.0"
__license__ = "Apache"
__description__ = "Submit MS/MS spectra to a Mascot server and map identifications back onto peak lists"
__author__ = "Mann Labs"
__author_email__ = "opensource@alphapept.com"
__keywords__ = [
    "bioinformatics",
    "software",
    "mascot",
    "proteomics",
]
__python_version__ = ">=3.10"
