#! /usr/bin/env python

"""
The joint model owns the parameter vector (theta) shared by parsing and execution scoring.
"""
import threading

from sparse_weights import SparseWeightVector


class JointModel:
    """
    Theta is mutated in place by learners, one update at a time.
    Scoring and updates share a lock so that a reader never observes a partially applied update.
    """
    def __init__(self,theta=None):
        self.theta = theta if theta is not None else SparseWeightVector()
        self._lock = threading.Lock()

    def score(self,parse):
        """
        @param parse: any object with a features attribute (a SparseWeightVector)
        @return the linear score theta.phi
        """
        with self._lock:
            return self.theta.dot(parse.features)

    def score_features(self,phi):
        with self._lock:
            return self.theta.dot(phi)

    def score_keys(self,xvec_keys,ylabel):
        with self._lock:
            return self.theta.dot_keys(xvec_keys,ylabel)

    def apply_update(self,update,scale=1.0):
        """
        theta <- theta + scale * update, as a single batch.
        @param update: a SparseWeightVector
        @param scale: a float
        """
        with self._lock:
            update.add_times_into(scale,self.theta)

    def __str__(self):
        return str(self.theta)
