"""Expand user-defined text macros in C/C++ sources through an external preprocessor."""
